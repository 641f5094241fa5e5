"""Cached list of the account's collections and lookup by display name.

Dashboard collections are named "Craftboard <Name>"; when a collection id
is not configured it can be found by the part after the prefix.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import List, Optional, Sequence

from craftboard.api.craft_client import (
    Collection,
    CollectionProperty,
    CraftClient,
    find_collection_by_name,
)
from craftboard.storage.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

LIST_KEY = "list"
REQUIRED_PROPERTIES = ("url", "category")


class CollectionDirectory:
    def __init__(self, client: CraftClient, cache: TTLCache):
        self.client = client
        self.cache = cache

    def collections(self, force_refresh: bool = False) -> List[Collection]:
        if not force_refresh:
            cached = self.cache.get(LIST_KEY)
            if isinstance(cached, list):
                try:
                    return [Collection(**d) for d in cached]
                except TypeError as e:
                    logger.warning(f"Cached collection list is malformed, refetching: {e}")
        else:
            self.cache.clear(LIST_KEY)

        collections = self.client.list_collections()
        self.cache.set(LIST_KEY, [asdict(c) for c in collections])
        logger.debug(f"Listed {len(collections)} collection(s)")
        return collections

    def find(self, search_terms: Sequence[str], force_refresh: bool = False) -> Optional[Collection]:
        return find_collection_by_name(self.collections(force_refresh), search_terms)

    def schema(self, collection_id: str, force_refresh: bool = False) -> List[CollectionProperty]:
        key = f"schema-{collection_id}"
        if not force_refresh:
            cached = self.cache.get(key)
            if isinstance(cached, list):
                try:
                    return [CollectionProperty(**d) for d in cached]
                except TypeError as e:
                    logger.warning(f"Cached schema for {collection_id} is malformed, refetching: {e}")
        else:
            self.cache.clear(key)

        properties = self.client.get_collection_schema(collection_id)
        self.cache.set(key, [asdict(p) for p in properties])
        return properties

    def missing_properties(self, collection_id: str, required: Sequence[str] = REQUIRED_PROPERTIES) -> List[str]:
        """Required property keys the collection's schema does not declare.

        An empty schema declares nothing we can check against, so nothing is reported missing.
        """
        properties = self.schema(collection_id)
        if not properties:
            return []
        declared = {p.key.lower() for p in properties} | {p.name.lower() for p in properties}
        return [r for r in required if r.lower() not in declared]
