"""Wiring: settings -> store -> caches -> loaders -> views."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from craftboard.analytics.tag_logs import TagLogLoader
from craftboard.api.craft_client import CraftClient
from craftboard.config import ConfigReader, Settings
from craftboard.errors import CraftboardError
from craftboard.ingestion.collection_directory import CollectionDirectory
from craftboard.ingestion.collection_loader import CollectionLoader, normalize_bookmark
from craftboard.ingestion.feed_aggregator import FeedAggregator
from craftboard.ingestion.feeds import FeedFetcher
from craftboard.ingestion.record_types import BookmarkRecord
from craftboard.storage.kv_store import KeyValueStore, SQLiteKeyValueStore
from craftboard.storage.ttl_cache import TTLCache
from craftboard.views.bookmarks import BookmarksView
from craftboard.views.feeds import FeedsView
from craftboard.views.observable import LoadingRegistry
from craftboard.views.tags import TagsView

logger = logging.getLogger(__name__)

RSS_CACHE_PREFIX = "rss-cache-"
RSS_ITEMS_CACHE_PREFIX = "rss-items-cache-"
BOOKMARKS_CACHE_PREFIX = "bookmarks-cache-"
TAGS_CACHE_PREFIX = "tags-cache-"
COLLECTIONS_CACHE_PREFIX = "collections-cache-"

RSS_COLLECTION_TERMS = ("rss", "feeds")
BOOKMARKS_COLLECTION_TERMS = ("bookmarks",)


@dataclass
class Dashboard:
    settings: Settings
    store: KeyValueStore
    config: ConfigReader
    registry: LoadingRegistry
    directory: CollectionDirectory
    feeds: FeedsView
    bookmarks: BookmarksView
    tags: TagsView

    def resolve_collection_ids(self) -> None:
        """Fill unset collection ids from "Craftboard <Name>" collections."""
        for name, view, terms in (
            ("rss", self.feeds, RSS_COLLECTION_TERMS),
            ("bookmarks", self.bookmarks, BOOKMARKS_COLLECTION_TERMS),
        ):
            if view.collection_id:
                continue
            try:
                found = self.directory.find(terms)
                missing = self.directory.missing_properties(found.id) if found else []
            except CraftboardError as e:
                logger.warning(f"Collection lookup failed: {e}")
                return
            if found is None:
                logger.warning(f"No Craftboard collection matching {list(terms)} for {name}")
                continue
            if missing:
                logger.warning(f"Collection '{found.name}' has no {missing} properties, not using it for {name}")
                continue
            logger.info(f"Using collection '{found.name}' ({found.id}) for {name}")
            view.collection_id = found.id


def build_dashboard(settings: Settings, store: Optional[KeyValueStore] = None) -> Dashboard:
    store = store or SQLiteKeyValueStore(settings.kv_store_path)
    config = ConfigReader(store)
    if settings.feed_proxy_urls:
        config.set_proxy_templates(settings.feed_proxy_urls)
    registry = LoadingRegistry()

    def cache(prefix: str) -> TTLCache:
        return TTLCache(store, prefix, ttl_ms=config.cache_ttl_ms)

    client = CraftClient(settings.api_url, settings.api_token, timeout=settings.request_timeout)
    fetcher = FeedFetcher(config.proxy_templates(), timeout=settings.feed_timeout)

    rss_loader = CollectionLoader(client.get_collection_items, cache(RSS_ITEMS_CACHE_PREFIX))
    aggregator = FeedAggregator(fetcher.fetch_async, cache(RSS_CACHE_PREFIX), rss_loader)

    bookmarks_loader = CollectionLoader(
        client.get_collection_items,
        cache(BOOKMARKS_CACHE_PREFIX),
        record_type=BookmarkRecord,
        normalize=normalize_bookmark,
    )
    tag_loader = TagLogLoader(client, cache(TAGS_CACHE_PREFIX))

    return Dashboard(
        settings=settings,
        store=store,
        config=config,
        registry=registry,
        directory=CollectionDirectory(client, cache(COLLECTIONS_CACHE_PREFIX)),
        feeds=FeedsView(aggregator, settings.rss_collection_id, registry=registry),
        bookmarks=BookmarksView(bookmarks_loader, settings.bookmarks_collection_id, registry=registry),
        tags=TagsView(tag_loader, settings.tracked_tags or config.saved_tags(), registry=registry),
    )
