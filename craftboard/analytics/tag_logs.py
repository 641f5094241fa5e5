"""Tagged log entries from document search.

load_logs() searches the document API for the tracked tags and turns each
hit into a LogEntry whose tags are the tracked tags (and their sub-paths)
found in its markdown. Hits without any such tag are dropped.
Results are cached per tag set.
"""

from __future__ import annotations

import hashlib
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from craftboard.analytics.tags import extract_tags, normalize_tag
from craftboard.analytics.time_buckets import parse_timestamp
from craftboard.api.craft_client import CraftClient
from craftboard.errors import CraftboardError
from craftboard.ingestion.record_types import LogEntry
from craftboard.storage.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

UNTITLED_DOCUMENT = "Untitled"
MAX_BLOCK_WORKERS = 8


def tag_set_key(tags: Sequence[str]) -> str:
    """Stable cache identifier for a set of tags (order and case insensitive)."""
    canon = "-".join(sorted({normalize_tag(t) for t in tags if normalize_tag(t)}))
    return hashlib.sha256(canon.encode("utf-8")).hexdigest()[:16]


def build_search_pattern(tags: Sequence[str]) -> str:
    patterns = [f"#{normalize_tag(t)}(?:/[\\w-]+)?" for t in tags if normalize_tag(t)]
    return "|".join(patterns) or "#[\\w-]+(?:/[\\w-]+)?"


def scoped_tags(markdown: str, tracked: Sequence[str]) -> List[str]:
    """Tracked tags (with sub-paths) present in markdown, in order of first occurrence."""
    if not tracked:
        return extract_tags(markdown)
    found: List[str] = []
    for tag in tracked:
        for t in extract_tags(markdown, tag):
            if t not in found:
                found.append(t)
    order = {t: i for i, t in enumerate(extract_tags(markdown))}
    return sorted(found, key=lambda t: order.get(t, len(order)))


def entries_from_search(items: Sequence[Mapping[str, Any]], tracked: Sequence[str]) -> List[LogEntry]:
    out: List[LogEntry] = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        document_id = str(item.get("documentId") or item.get("id") or "")
        markdown = str(item.get("markdown") or "")
        tags = scoped_tags(markdown, tracked)
        if not document_id or not tags:
            continue
        out.append(
            LogEntry(
                document_id=document_id,
                document_title=str(item.get("title") or item.get("documentTitle") or UNTITLED_DOCUMENT),
                markdown=markdown,
                tags=tuple(tags),
                block_id=item.get("blockId") or item.get("id"),
                created_at=item.get("createdAt") or None,
                last_modified_at=item.get("lastModifiedAt") or None,
                daily_note_date=item.get("dailyNoteDate") or None,
            )
        )
    return out


def entries_from_block_tree(
    block: Mapping[str, Any],
    document_id: str,
    document_title: str,
    tracked: Sequence[str],
) -> List[LogEntry]:
    """Walk a block tree and emit one entry per block carrying a tracked tag."""
    out: List[LogEntry] = []
    stack = [block]
    while stack:
        node = stack.pop()
        if not isinstance(node, Mapping):
            continue
        markdown = str(node.get("markdown") or "")
        tags = scoped_tags(markdown, tracked)
        if tags:
            meta = node.get("metadata")
            if not isinstance(meta, Mapping):
                meta = {}
            out.append(
                LogEntry(
                    document_id=document_id,
                    document_title=document_title,
                    markdown=markdown,
                    tags=tuple(tags),
                    block_id=node.get("id"),
                    created_at=meta.get("createdAt") or None,
                    last_modified_at=meta.get("lastModifiedAt") or None,
                )
            )
        children = node.get("content")
        if isinstance(children, list):
            stack.extend(reversed(children))
    return out


def sort_recent_first(entries: List[LogEntry]) -> List[LogEntry]:
    dated = [(parse_timestamp(e.date), e) for e in entries]
    with_date = sorted((p for p in dated if p[0] is not None), key=lambda p: p[0], reverse=True)
    return [e for _, e in with_date] + [e for d, e in dated if d is None]


@dataclass(frozen=True)
class DocumentTags:
    document_id: str
    title: str
    tags: tuple
    daily_note_date: Optional[str] = None


class TagLogLoader:
    def __init__(self, client: CraftClient, cache: TTLCache):
        self.client = client
        self.cache = cache
        self.total_calls = 0
        self.completed_calls = 0

    def load_logs(
        self,
        tags: Sequence[str],
        force_refresh: bool = False,
        *,
        expand_blocks: bool = False,
    ) -> List[LogEntry]:
        tracked = [normalize_tag(t) for t in tags if normalize_tag(t)]
        if not tracked:
            return []

        key = tag_set_key(tracked)
        if not force_refresh:
            cached = self.cache.get(key)
            if isinstance(cached, list):
                try:
                    return [LogEntry.from_dict(d) for d in cached]
                except (KeyError, TypeError, AttributeError) as e:
                    logger.warning(f"Cached logs for {tracked} are malformed, refetching: {e}")
        else:
            self.cache.clear(key)

        self.total_calls = 1
        self.completed_calls = 0
        search = self.client.search_documents(build_search_pattern(tracked), fetch_metadata=True)
        self.completed_calls += 1
        items = search.get("items") or []

        if expand_blocks:
            entries = self._expand_blocks(items, tracked)
        else:
            entries = entries_from_search(items, tracked)

        entries = sort_recent_first(entries)
        self.cache.set(key, [e.to_dict() for e in entries])
        return entries

    def _expand_blocks(self, items: Sequence[Mapping[str, Any]], tracked: Sequence[str]) -> List[LogEntry]:
        documents: Dict[str, str] = {}
        for item in items:
            if not isinstance(item, Mapping):
                continue
            doc_id = str(item.get("documentId") or item.get("id") or "")
            if doc_id and doc_id not in documents:
                documents[doc_id] = str(item.get("title") or UNTITLED_DOCUMENT)

        if not documents:
            return []

        def expand(doc_id: str, title: str) -> List[LogEntry]:
            try:
                tree = self.client.get_blocks(doc_id, fetch_metadata=True)
            except CraftboardError as e:
                # One unreadable document does not sink the rest
                logger.error(f"Error fetching blocks for document {doc_id}: {e}")
                return []
            return entries_from_block_tree(tree, doc_id, title, tracked)

        self.total_calls += len(documents)
        entries: List[LogEntry] = []
        with ThreadPoolExecutor(max_workers=min(MAX_BLOCK_WORKERS, len(documents))) as pool:
            for found in pool.map(expand, documents.keys(), documents.values()):
                entries.extend(found)
                self.completed_calls += 1
        return entries

    def documents_by_tags(self, tags: Sequence[str], force_refresh: bool = False) -> Dict[str, DocumentTags]:
        """Per-document union of tracked tags, for the graph view."""
        tracked = [normalize_tag(t) for t in tags if normalize_tag(t)]
        if not tracked:
            return {}

        key = f"docs-by-tags-{tag_set_key(tracked)}"
        if not force_refresh:
            cached = self.cache.get(key)
            if isinstance(cached, list):
                return {
                    d["documentId"]: DocumentTags(d["documentId"], d.get("title") or UNTITLED_DOCUMENT,
                                                  tuple(d.get("tags") or ()), d.get("dailyNoteDate"))
                    for d in cached if isinstance(d, dict) and d.get("documentId")
                }

        search = self.client.search_documents(build_search_pattern(tracked), fetch_metadata=True)
        result: Dict[str, DocumentTags] = {}
        for entry in entries_from_search(search.get("items") or [], tracked):
            prev = result.get(entry.document_id)
            merged = tuple(dict.fromkeys((prev.tags if prev else ()) + entry.tags))
            result[entry.document_id] = DocumentTags(
                document_id=entry.document_id,
                title=entry.document_title,
                tags=merged,
                daily_note_date=entry.daily_note_date or (prev.daily_note_date if prev else None),
            )

        self.cache.set(key, [
            {"documentId": d.document_id, "title": d.title, "tags": list(d.tags), "dailyNoteDate": d.daily_note_date}
            for d in result.values()
        ])
        return result
