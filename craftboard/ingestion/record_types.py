"""Shared data types for collection records and feed content."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class CollectionRecord:
    """A validated collection row. url and category are always non-empty."""

    id: str
    title: str
    url: str
    category: str
    tags: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["tags"] = list(self.tags)
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'CollectionRecord':
        return cls(
            id=str(d["id"]),
            title=str(d.get("title") or ""),
            url=str(d["url"]),
            category=str(d["category"]),
            tags=tuple(str(t) for t in d.get("tags") or ()),
        )


@dataclass(frozen=True)
class BookmarkRecord(CollectionRecord):
    env: Optional[str] = None  # dev | staging | prod

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'BookmarkRecord':
        base = CollectionRecord.from_dict(d)
        return cls(**asdict(base), env=d.get("env") or None)


@dataclass(frozen=True)
class FeedItem:
    title: str
    link: str
    description: str = ""
    pub_date: Optional[str] = None
    author: Optional[str] = None
    guid: Optional[str] = None


@dataclass(frozen=True)
class ParsedFeed:
    """Feed content as parsed, before it is attached to a source."""

    title: str
    link: str = ""
    description: str = ""
    items: Tuple[FeedItem, ...] = ()


@dataclass(frozen=True)
class FeedResult:
    """Feed content for one collection record, keyed by its id."""

    source_id: str
    title: str
    items: Tuple[FeedItem, ...] = ()
    link: str = ""
    description: str = ""

    @classmethod
    def from_parsed(cls, source_id: str, feed: ParsedFeed) -> 'FeedResult':
        return cls(
            source_id=source_id,
            title=feed.title,
            items=feed.items,
            link=feed.link,
            description=feed.description,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sourceId": self.source_id,
            "title": self.title,
            "link": self.link,
            "description": self.description,
            "items": [
                {
                    "title": it.title,
                    "link": it.link,
                    "description": it.description,
                    "pubDate": it.pub_date,
                    "author": it.author,
                    "guid": it.guid,
                }
                for it in self.items
            ],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'FeedResult':
        items: List[FeedItem] = []
        for it in d.get("items") or []:
            if not isinstance(it, dict) or not it.get("link"):
                continue
            items.append(
                FeedItem(
                    title=str(it.get("title") or ""),
                    link=str(it["link"]),
                    description=str(it.get("description") or ""),
                    pub_date=it.get("pubDate"),
                    author=it.get("author"),
                    guid=it.get("guid"),
                )
            )
        return cls(
            source_id=str(d["sourceId"]),
            title=str(d.get("title") or ""),
            items=tuple(items),
            link=str(d.get("link") or ""),
            description=str(d.get("description") or ""),
        )


@dataclass(frozen=True)
class LogEntry:
    """A tagged piece of a document, as used by tag analytics."""

    document_id: str
    document_title: str
    markdown: str
    tags: Tuple[str, ...]
    block_id: Optional[str] = None
    created_at: Optional[str] = None
    last_modified_at: Optional[str] = None
    daily_note_date: Optional[str] = None

    @property
    def date(self) -> Optional[str]:
        return self.created_at or self.last_modified_at or self.daily_note_date

    def to_dict(self) -> Dict[str, Any]:
        return {
            "documentId": self.document_id,
            "documentTitle": self.document_title,
            "markdown": self.markdown,
            "tags": list(self.tags),
            "blockId": self.block_id,
            "createdAt": self.created_at,
            "lastModifiedAt": self.last_modified_at,
            "dailyNoteDate": self.daily_note_date,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'LogEntry':
        return cls(
            document_id=str(d["documentId"]),
            document_title=str(d.get("documentTitle") or ""),
            markdown=str(d.get("markdown") or ""),
            tags=tuple(str(t) for t in d.get("tags") or ()),
            block_id=d.get("blockId"),
            created_at=d.get("createdAt"),
            last_modified_at=d.get("lastModifiedAt"),
            daily_note_date=d.get("dailyNoteDate"),
        )
