"""RSS view state: records, per-source feed content and loading flags."""

from __future__ import annotations

from typing import Dict, FrozenSet, List, Optional, Set

from craftboard.ingestion.feed_aggregator import FeedAggregator
from craftboard.ingestion.record_types import CollectionRecord, FeedResult
from craftboard.views.observable import LoadingRegistry, Observable

LOADER_ID = "rss"


class FeedsView(Observable):
    def __init__(
        self,
        aggregator: FeedAggregator,
        collection_id: str,
        *,
        registry: Optional[LoadingRegistry] = None,
    ):
        super().__init__()
        self.aggregator = aggregator
        self.aggregator.on_change = self.publish
        self.collection_id = collection_id
        self.registry = registry
        self.active_filters: Set[str] = set()

    @property
    def records(self) -> List[CollectionRecord]:
        return list(self.aggregator.records)

    @property
    def feed_results(self) -> Dict[str, FeedResult]:
        return dict(self.aggregator.feed_results)

    @property
    def loading_ids(self) -> FrozenSet[str]:
        return frozenset(self.aggregator.loading_ids)

    @property
    def is_loading(self) -> bool:
        return self.aggregator.is_loading

    @property
    def error(self) -> Optional[str]:
        return self.aggregator.error

    @property
    def progress(self) -> tuple:
        return self.aggregator.completed_calls, self.aggregator.total_calls

    async def refresh(self, force_refresh: bool = False) -> None:
        if self.registry:
            self.registry.start(LOADER_ID)
        try:
            await self.aggregator.initialize(self.collection_id, force_refresh)
        finally:
            if self.registry:
                self.registry.stop(LOADER_ID)

    async def refresh_feed(self, record: CollectionRecord) -> None:
        await self.aggregator.refresh_one(record, force=True)

    def feed_status(self, record: CollectionRecord) -> str:
        """loading, loaded or failed (no content after the last attempt)."""
        if record.id in self.aggregator.loading_ids:
            return "loading"
        if record.id in self.aggregator.feed_results:
            return "loaded"
        return "failed"

    # -----------------------------
    # Category filter
    # -----------------------------
    def toggle_filter(self, category: str) -> None:
        if category in self.active_filters:
            self.active_filters.remove(category)
        else:
            self.active_filters.add(category)
        self.publish("active_filters")

    def categories(self) -> List[str]:
        return sorted({r.category for r in self.aggregator.records})

    def filtered_records(self) -> List[CollectionRecord]:
        if not self.active_filters:
            return self.records
        return [r for r in self.aggregator.records if r.category in self.active_filters]
