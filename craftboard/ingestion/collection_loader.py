"""Collection loading: cache-first read, validation, write-through.

Raw collection items carry a free-form ``properties`` mapping whose key
spellings vary (``URL``/``url``, ``Category``/``category``...). Each field is
resolved through a fixed precedence list, and a record is only produced when
url and category are both non-empty.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Type

from craftboard.errors import ConfigurationMissing, CraftboardError, FetchFailure
from craftboard.ingestion.record_types import BookmarkRecord, CollectionRecord
from craftboard.storage.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

URL_KEYS = ("URL", "url", "Url")
CATEGORY_KEYS = ("Category", "category")
TAGS_KEYS = ("tags", "Tags")
ENV_KEYS = ("env", "Env")
BOOKMARK_ENVS = ("dev", "staging", "prod")
UNTITLED = "untitled"

FetchItems = Callable[[str], List[Dict[str, Any]]]


def resolve_property(properties: Mapping[str, Any], keys: Sequence[str], default: Any = "") -> Any:
    """First truthy value among the accepted spellings, then any key matching case-insensitively."""
    for key in keys:
        value = properties.get(key)
        if value:
            return value
    wanted = {k.lower() for k in keys}
    for key, value in properties.items():
        if isinstance(key, str) and key.lower() in wanted and value:
            return value
    return default


def normalize_title(title: Any) -> str:
    s = str(title or "")
    return "" if s.strip().lower() == UNTITLED else s


def _normalize_tags(raw: Any) -> tuple:
    if isinstance(raw, (list, tuple)):
        return tuple(str(t) for t in raw)
    return ()


def normalize_record(item: Mapping[str, Any]) -> Optional[CollectionRecord]:
    """Return a CollectionRecord, or None when url/category are missing."""
    properties = item.get("properties") or {}
    if not isinstance(properties, Mapping):
        properties = {}

    url = resolve_property(properties, URL_KEYS)
    category = resolve_property(properties, CATEGORY_KEYS)
    if not url or not category:
        return None
    url, category = str(url).strip(), str(category).strip()
    if not url or not category:
        return None

    return CollectionRecord(
        id=str(item.get("id") or ""),
        title=normalize_title(item.get("title")),
        url=url,
        category=category,
        tags=_normalize_tags(resolve_property(properties, TAGS_KEYS, default=[])),
    )


def normalize_bookmark(item: Mapping[str, Any]) -> Optional[BookmarkRecord]:
    base = normalize_record(item)
    if base is None:
        return None
    properties = item.get("properties") or {}
    env = str(resolve_property(properties, ENV_KEYS) or "").strip().lower()
    return BookmarkRecord(
        id=base.id,
        title=base.title,
        url=base.url,
        category=base.category,
        tags=base.tags,
        env=env if env in BOOKMARK_ENVS else None,
    )


def validate_items(
    items: Sequence[Any],
    normalize: Callable[[Mapping[str, Any]], Optional[CollectionRecord]] = normalize_record,
) -> List[CollectionRecord]:
    out: List[CollectionRecord] = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        record = normalize(item)
        if record is not None:
            out.append(record)
    return out


class CollectionLoader:
    """Loads validated records for a collection id.

    load(cid) returns cached records when the cache is fresh, otherwise it
    fetches, validates and writes the result through the cache.
    load(cid, force_refresh=True) clears the cache entry before fetching,
    so a failed refresh leaves the cache empty rather than stale.
    """

    def __init__(
        self,
        fetch_items: FetchItems,
        cache: TTLCache,
        *,
        record_type: Type[CollectionRecord] = CollectionRecord,
        normalize: Callable[[Mapping[str, Any]], Optional[CollectionRecord]] = normalize_record,
    ):
        self.fetch_items = fetch_items
        self.cache = cache
        self.record_type = record_type
        self.normalize = normalize
        self.total_calls = 0
        self.completed_calls = 0

    def load(self, collection_id: str, force_refresh: bool = False) -> List[CollectionRecord]:
        if not collection_id:
            raise ConfigurationMissing("Collection ID not configured")

        if not force_refresh:
            cached = self._read_cache(collection_id)
            if cached is not None:
                return cached
        else:
            self.cache.clear(collection_id)

        self.total_calls = 1
        self.completed_calls = 0
        try:
            raw_items = self.fetch_items(collection_id)
        except CraftboardError:
            raise
        except Exception as e:
            logger.error(f"Error fetching collection items for {collection_id}: {e}")
            raise FetchFailure(f"Failed to fetch collection items: {e}") from e
        finally:
            self.completed_calls += 1

        records = validate_items(raw_items or [], self.normalize)
        dropped = len(raw_items or []) - len(records)
        if dropped:
            logger.debug(f"Collection {collection_id}: dropped {dropped} item(s) missing url/category")

        self.cache.set(collection_id, [r.to_dict() for r in records])
        return records

    def _read_cache(self, collection_id: str) -> Optional[List[CollectionRecord]]:
        cached = self.cache.get(collection_id)
        if not isinstance(cached, list):
            return None
        try:
            return [self.record_type.from_dict(d) for d in cached]
        except (KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Cached records for {collection_id} are malformed, refetching: {e}")
            self.cache.clear(collection_id)
            return None
