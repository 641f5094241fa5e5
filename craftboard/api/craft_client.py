"""HTTP client for the Craft document API.

Only the calls the dashboard needs: collections (list, schema, items),
document search and block trees. Every request carries the bearer token
when one is configured.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import requests

from craftboard.errors import ConfigurationMissing, FetchFailure, ParseFailure

USER_AGENT = "Craftboard/1.0"
COLLECTION_PREFIX = "craftboard"


@dataclass(frozen=True)
class Collection:
    id: str
    name: str
    item_count: int = 0
    document_id: str = ""


@dataclass(frozen=True)
class CollectionProperty:
    key: str
    name: str
    type: str
    description: Optional[str] = None
    options: Optional[List[str]] = None
    is_relation: bool = False


class CraftClient:
    def __init__(
        self,
        api_url: str,
        token: str = "",
        *,
        timeout: int = 30,
        session: Optional[requests.Session] = None,
    ):
        self.api_url = (api_url or "").rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "User-Agent": USER_AGENT}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None, *, what: str) -> Any:
        if not self.api_url:
            raise ConfigurationMissing("Craft API URL not configured")
        url = f"{self.api_url}{path}"
        try:
            resp = self.session.get(url, params=params, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchFailure(f"Failed to fetch {what}: {e}", url=url) from e
        if not resp.ok:
            raise FetchFailure(
                f"Failed to fetch {what}: {resp.status_code} {resp.reason}",
                status_code=resp.status_code,
                url=url,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise ParseFailure(f"Failed to parse {what}: response is not JSON", url=url) from e

    # -----------------------------
    # Collections
    # -----------------------------
    def list_collections(self) -> List[Collection]:
        data = self._get_json("/collections", what="collections") or {}
        items = data.get("items") if isinstance(data, dict) else None
        out: List[Collection] = []
        for c in items or []:
            if not isinstance(c, dict) or not c.get("id"):
                continue
            out.append(
                Collection(
                    id=str(c["id"]),
                    name=str(c.get("name") or ""),
                    item_count=_count(c.get("itemCount")),
                    document_id=str(c.get("documentId") or ""),
                )
            )
        return out

    def get_collection_items(self, collection_id: str) -> List[Dict[str, Any]]:
        """Raw items: dicts with id, title and a free-form properties mapping."""
        data = self._get_json(f"/collections/{collection_id}/items", what="collection items") or {}
        items = data.get("items") if isinstance(data, dict) else None
        return [i for i in (items or []) if isinstance(i, dict)]

    def get_collection_schema(self, collection_id: str) -> List[CollectionProperty]:
        raw = self._get_json(f"/collections/{collection_id}/schema", what="collection schema") or {}
        return parse_collection_schema(raw)

    # -----------------------------
    # Documents and blocks
    # -----------------------------
    def search_documents(self, regexps: str, *, fetch_metadata: bool = True) -> Dict[str, Any]:
        params = {"regexps": regexps, "fetchMetadata": str(fetch_metadata).lower()}
        data = self._get_json("/documents/search", params, what="document search") or {}
        if not isinstance(data, dict):
            raise ParseFailure("Failed to parse document search: expected an object")
        data.setdefault("items", [])
        return data

    def get_blocks(
        self,
        document_id: str,
        *,
        fetch_metadata: bool = True,
        max_depth: Optional[int] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"id": document_id, "fetchMetadata": str(fetch_metadata).lower()}
        if max_depth is not None:
            params["maxDepth"] = max_depth
        data = self._get_json("/blocks", params, what=f"blocks for {document_id}")
        return data if isinstance(data, dict) else {}


def _count(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def parse_collection_schema(raw: Dict[str, Any]) -> List[CollectionProperty]:
    """Flatten the API's nested JSON-schema into a list of properties.

    The property definitions live at
    properties.items.items.properties.properties.properties.
    """
    node: Any = raw
    for key in ("properties", "items", "items", "properties", "properties", "properties"):
        node = node.get(key) if isinstance(node, dict) else None
    if not isinstance(node, dict):
        return []

    props: List[CollectionProperty] = []
    for key, prop_def in node.items():
        if not isinstance(prop_def, dict):
            continue
        ptype = prop_def.get("type") or "string"
        is_relation = False
        if ptype == "object" and isinstance(prop_def.get("properties"), dict) and "relations" in prop_def["properties"]:
            ptype = "relation"
            is_relation = True
        if ptype == "array" and (prop_def.get("items") or {}).get("type") == "string":
            ptype = "multiselect"

        description = prop_def.get("description")
        options = None
        if description:
            m = re.search(r"Existing options: (.+)", description)
            if m:
                options = [o.strip().strip('"') for o in m.group(1).split(",")]

        props.append(
            CollectionProperty(
                key=key,
                name=prop_def.get("title") or key,
                type=ptype,
                description=description,
                options=options,
                is_relation=is_relation,
            )
        )
    return props


def find_collection_by_name(collections: Sequence[Collection], search_terms: Sequence[str]) -> Optional[Collection]:
    """Find a "Craftboard <Name>" collection by the part after the prefix."""
    for collection in collections:
        name = collection.name.lower()
        if not name.startswith(COLLECTION_PREFIX):
            continue
        after_prefix = re.sub(r"^craftboard\s*", "", name).strip()
        for term in search_terms:
            t = term.lower()
            if after_prefix == t or t in after_prefix:
                return collection
    return None
