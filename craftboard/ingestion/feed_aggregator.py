"""Concurrent feed aggregation for an RSS collection.

One fetch per collection record, all in flight at once, joined with
gather(return_exceptions=True) so a failing feed never aborts its siblings.

State owned here:
- records:      validated collection records
- feed_results: source id -> FeedResult, only for successful fetches
- loading_ids:  source ids with a fetch in flight

Every successful fetch persists the whole current map together with the
records, so the cached bundle always holds every feed fetched so far.
A mid-refresh reader of the cache may see a partial set of feeds.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set

from jsonschema import Draft202012Validator

from craftboard.errors import ConfigurationMissing, CraftboardError
from craftboard.ingestion.collection_loader import CollectionLoader
from craftboard.ingestion.record_types import CollectionRecord, FeedResult, ParsedFeed
from craftboard.storage.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

FetchFeed = Callable[[str], Awaitable[Optional[ParsedFeed]]]
ChangeCallback = Callable[[str], None]

LOADED = "loaded"
EMPTY = "empty"      # fetched, but nothing parseable came back
FAILED = "failed"
SKIPPED = "skipped"

BUNDLE_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["records"],
    "properties": {
        "records": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "url", "category"],
                "properties": {
                    "id": {"type": "string"},
                    "title": {"type": "string"},
                    "url": {"type": "string", "minLength": 1},
                    "category": {"type": "string", "minLength": 1},
                    "tags": {"type": "array", "items": {"type": "string"}},
                },
            },
        },
        "feeds": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "required": ["sourceId", "items"],
                "properties": {
                    "sourceId": {"type": "string"},
                    "title": {"type": "string"},
                    "items": {"type": "array"},
                },
            },
        },
    },
}

_bundle_validator = Draft202012Validator(BUNDLE_SCHEMA)


@dataclass(frozen=True)
class FeedOutcome:
    source_id: str
    status: str
    error: Optional[str] = None


class FeedAggregator:
    def __init__(
        self,
        fetch_feed: FetchFeed,
        cache: TTLCache,
        loader: CollectionLoader,
        *,
        on_change: Optional[ChangeCallback] = None,
    ):
        self.fetch_feed = fetch_feed
        self.cache = cache
        self.loader = loader
        self.on_change = on_change

        self.collection_id: Optional[str] = None
        self.records: List[CollectionRecord] = []
        self.feed_results: Dict[str, FeedResult] = {}
        self.loading_ids: Set[str] = set()
        self.is_loading = False
        self.error: Optional[str] = None
        self.total_calls = 0
        self.completed_calls = 0

        self._revalidate_task: Optional[asyncio.Task] = None

    def _notify(self, field: str) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change(field)
        except Exception as e:
            logger.error(f"Change listener failed for {field}: {e}")

    def _set_loading(self, value: bool) -> None:
        self.is_loading = value
        self._notify("is_loading")

    def _set_error(self, message: Optional[str]) -> None:
        self.error = message
        self._notify("error")

    # -----------------------------
    # Cache bundle
    # -----------------------------
    def _persist(self) -> None:
        if not self.collection_id:
            return
        self.cache.set(
            self.collection_id,
            {
                "records": [r.to_dict() for r in self.records],
                "feeds": {sid: fr.to_dict() for sid, fr in self.feed_results.items()},
            },
        )

    def _restore(self, collection_id: str) -> bool:
        cached = self.cache.get(collection_id)
        if cached is None:
            return False
        if not _bundle_validator.is_valid(cached):
            logger.warning(f"Cached feed bundle for {collection_id} has an unexpected shape, ignoring")
            self.cache.clear(collection_id)
            return False
        self.records = [CollectionRecord.from_dict(d) for d in cached["records"]]
        self.feed_results = {sid: FeedResult.from_dict(d) for sid, d in (cached.get("feeds") or {}).items()}
        self._notify("records")
        self._notify("feed_results")
        return True

    # -----------------------------
    # Entry points
    # -----------------------------
    async def initialize(self, collection_id: str, force_refresh: bool = False) -> None:
        """Load records and feeds for a collection.

        Without force_refresh a fresh cached bundle is shown immediately and
        a background refresh_all() fills in whatever the bundle is missing.
        With force_refresh the bundle is dropped and everything is refetched.
        Parent-collection failures land in ``error``; feed failures never do.
        """
        if not collection_id:
            self._set_error(str(ConfigurationMissing("RSS collection ID not configured")))
            return

        self.collection_id = collection_id
        self._set_error(None)

        if not force_refresh:
            if self._restore(collection_id):
                logger.debug(f"Feed bundle cache hit for {collection_id}, revalidating in background")
                self._revalidate_task = asyncio.create_task(self.refresh_all())
                return
        else:
            self.cache.clear(collection_id)

        self._set_loading(True)
        try:
            records = await asyncio.to_thread(self.loader.load, collection_id, force_refresh)
        except CraftboardError as e:
            logger.error(f"Failed to load RSS collection {collection_id}: {e}")
            self._set_error(str(e))
            self._set_loading(False)
            return

        self.records = list(records)
        keep = {r.id for r in self.records}
        self.feed_results = {sid: fr for sid, fr in self.feed_results.items() if sid in keep}
        self._notify("records")
        self._notify("feed_results")
        self._persist()

        try:
            outcomes = await self.refresh_all(force=force_refresh)
        finally:
            self._set_loading(False)
        failed = sum(1 for o in outcomes if o.status in (FAILED, EMPTY))
        logger.info(
            f"Refreshed {len(self.records)} feed(s) for {collection_id}: "
            f"{len(self.feed_results)} loaded, {failed} failed"
        )

    async def refresh(self, force_refresh: bool = False) -> None:
        if not self.collection_id:
            self._set_error(str(ConfigurationMissing("RSS collection ID not configured")))
            return
        await self.initialize(self.collection_id, force_refresh)

    async def settle(self) -> None:
        """Wait for a background revalidation started by initialize()."""
        task = self._revalidate_task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def refresh_all(
        self,
        records: Optional[Sequence[CollectionRecord]] = None,
        *,
        force: bool = False,
    ) -> List[FeedOutcome]:
        """Fetch every record's feed concurrently and wait for all to settle."""
        targets = list(self.records if records is None else records)
        self.total_calls = 1 + len(targets)
        self.completed_calls = 1
        results = await asyncio.gather(
            *(self.refresh_one(r, force=force) for r in targets),
            return_exceptions=True,
        )
        outcomes: List[FeedOutcome] = []
        for record, result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.error(f"Unexpected error refreshing feed {record.id}: {result}")
                outcomes.append(FeedOutcome(record.id, FAILED, str(result)))
            else:
                outcomes.append(result)
        return outcomes

    async def refresh_one(self, record: CollectionRecord, force: bool = False) -> FeedOutcome:
        sid = record.id
        # A fetch already in flight for this id wins, forced or not.
        if sid in self.loading_ids:
            logger.debug(f"Feed {sid} already loading, skipping")
            return FeedOutcome(sid, SKIPPED)
        if not force and sid in self.feed_results:
            return FeedOutcome(sid, SKIPPED)

        if force and sid in self.feed_results:
            del self.feed_results[sid]
            self._notify("feed_results")

        self.loading_ids.add(sid)
        self._notify("loading_ids")
        try:
            feed = await self.fetch_feed(record.url)
            if feed is None:
                logger.warning(f"Failed to fetch or parse feed for {record.title or record.url}")
                return FeedOutcome(sid, EMPTY)
            self.feed_results[sid] = FeedResult.from_parsed(sid, feed)
            self._notify("feed_results")
            self._persist()
            return FeedOutcome(sid, LOADED)
        except Exception as e:
            logger.error(f"Error fetching RSS feed for {record.title or record.url}: {e}")
            return FeedOutcome(sid, FAILED, str(e))
        finally:
            self.loading_ids.discard(sid)
            self.completed_calls += 1
            self._notify("loading_ids")
