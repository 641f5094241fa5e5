"""Publish-on-change state for the presentation layer."""

from __future__ import annotations

import logging
from typing import Callable, List, Set

logger = logging.getLogger(__name__)

Listener = Callable[[str], None]


class Observable:
    """Listeners are called with the name of the field that changed."""

    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, field: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(field)
            except Exception as e:
                logger.error(f"Listener failed on {type(self).__name__}.{field}: {e}")


class LoadingRegistry(Observable):
    """Ids of every loader currently active across views."""

    def __init__(self):
        super().__init__()
        self.loaders: Set[str] = set()

    @property
    def is_loading(self) -> bool:
        return bool(self.loaders)

    def start(self, loader_id: str) -> None:
        self.loaders.add(loader_id)
        self.publish("loaders")

    def stop(self, loader_id: str) -> None:
        self.loaders.discard(loader_id)
        self.publish("loaders")

    def stop_all(self) -> None:
        self.loaders.clear()
        self.publish("loaders")
