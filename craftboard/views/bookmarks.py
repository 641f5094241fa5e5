"""Bookmarks view state."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Set

from craftboard.analytics.tags import normalize_tag
from craftboard.errors import ConfigurationMissing, CraftboardError
from craftboard.ingestion.collection_loader import CollectionLoader
from craftboard.ingestion.record_types import CollectionRecord
from craftboard.views.observable import LoadingRegistry, Observable

logger = logging.getLogger(__name__)

LOADER_ID = "bookmarks"


class BookmarksView(Observable):
    def __init__(
        self,
        loader: CollectionLoader,
        collection_id: str,
        *,
        registry: Optional[LoadingRegistry] = None,
    ):
        super().__init__()
        self.loader = loader
        self.collection_id = collection_id
        self.registry = registry

        self.bookmarks: List[CollectionRecord] = []
        self.is_loading = False
        self.error: Optional[str] = None
        self.active_filters: Set[str] = set()

    def _set(self, field: str, value) -> None:
        setattr(self, field, value)
        self.publish(field)

    async def refresh(self, force_refresh: bool = False) -> None:
        if not self.collection_id:
            self._set("error", str(ConfigurationMissing("Bookmarks collection ID not configured")))
            return

        self._set("is_loading", True)
        self._set("error", None)
        if self.registry:
            self.registry.start(LOADER_ID)
        try:
            records = await asyncio.to_thread(self.loader.load, self.collection_id, force_refresh)
            self._set("bookmarks", list(records))
        except CraftboardError as e:
            logger.error(f"Failed to load bookmarks: {e}")
            self._set("bookmarks", [])
            self._set("error", str(e))
        finally:
            self._set("is_loading", False)
            if self.registry:
                self.registry.stop(LOADER_ID)

    def toggle_filter(self, tag: str) -> None:
        tag = normalize_tag(tag)
        if tag in self.active_filters:
            self.active_filters.remove(tag)
        else:
            self.active_filters.add(tag)
        self.publish("active_filters")

    def all_tags(self) -> List[str]:
        return sorted({normalize_tag(t) for b in self.bookmarks for t in b.tags if normalize_tag(t)})

    def filtered_bookmarks(self) -> List[CollectionRecord]:
        if not self.active_filters:
            return list(self.bookmarks)
        return [
            b for b in self.bookmarks
            if any(normalize_tag(t) in self.active_filters for t in b.tags)
        ]

    def grouped_by_category(self) -> Dict[str, List[CollectionRecord]]:
        groups: Dict[str, List[CollectionRecord]] = {}
        for b in self.filtered_bookmarks():
            groups.setdefault(b.category, []).append(b)
        return groups
