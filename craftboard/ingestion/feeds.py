"""RSS / Atom fetching and parsing.

parse_feed() normalizes a feed document into ParsedFeed:
- items without a link are skipped
- "Untitled" titles become ""
- an empty item title falls back to the first description line (100 chars),
  then to the link's host, then to "Untitled Post"

FeedFetcher tries each proxy template in order. "{url}" alone means a direct
request. None means every source answered but nothing parsed; FetchFailure
means no source could be reached at all.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, List, Optional, Sequence
from urllib.parse import quote, urlparse

import feedparser
import requests

from craftboard.config import DIRECT_FETCH_TEMPLATE
from craftboard.errors import FetchFailure
from craftboard.ingestion.collection_loader import normalize_title
from craftboard.ingestion.record_types import FeedItem, ParsedFeed

logger = logging.getLogger(__name__)

USER_AGENT = "Craftboard/1.0 (+feed reader)"
FALLBACK_ITEM_TITLE = "Untitled Post"
MAX_DERIVED_TITLE = 100
ALLORIGINS_JSON_RE = re.compile(r"allorigins\.win/get\?")


def _host_title(link: str) -> str:
    try:
        host = urlparse(link).hostname or ""
    except ValueError:
        host = ""
    return host.replace("www.", "", 1) if host else FALLBACK_ITEM_TITLE


def _entry_description(entry: Any) -> str:
    summary = entry.get("summary") or ""
    if summary:
        return str(summary)
    content = entry.get("content") or []
    if content and isinstance(content[0], dict):
        return str(content[0].get("value") or "")
    return ""


def _entry_item(entry: Any) -> Optional[FeedItem]:
    link = str(entry.get("link") or "").strip()
    if not link:
        return None
    description = _entry_description(entry)
    title = normalize_title(entry.get("title")).strip()
    if not title and description:
        title = description.split("\n")[0][:MAX_DERIVED_TITLE].strip()
    if not title:
        title = _host_title(link)
    return FeedItem(
        title=title,
        link=link,
        description=description,
        pub_date=entry.get("published") or entry.get("updated") or None,
        author=entry.get("author") or None,
        guid=entry.get("id") or None,
    )


def parse_feed(text: str) -> Optional[ParsedFeed]:
    """Parse RSS 2.0 or Atom text. None when it is neither."""
    if not text or not text.strip():
        return None
    parsed = feedparser.parse(text)
    if not parsed.get("version") and not parsed.get("entries"):
        return None

    feed = parsed.get("feed") or {}
    items: List[FeedItem] = []
    skipped = 0
    for entry in parsed.get("entries") or []:
        item = _entry_item(entry)
        if item is None:
            skipped += 1
            continue
        items.append(item)
    if skipped:
        logger.debug(f"Skipped {skipped} feed entries without a link")

    return ParsedFeed(
        title=normalize_title(feed.get("title")),
        link=str(feed.get("link") or ""),
        description=str(feed.get("subtitle") or feed.get("description") or ""),
        items=tuple(items),
    )


class FeedFetcher:
    def __init__(
        self,
        proxy_templates: Optional[Sequence[str]] = None,
        *,
        timeout: int = 15,
        session: Optional[requests.Session] = None,
    ):
        self.proxy_templates = list(proxy_templates or [DIRECT_FETCH_TEMPLATE])
        self.timeout = timeout
        self.session = session or requests.Session()

    @staticmethod
    def build_request_url(template: str, url: str) -> str:
        if template == DIRECT_FETCH_TEMPLATE:
            return url
        return template.replace("{url}", quote(url, safe=""))

    def _read_body(self, request_url: str, resp: requests.Response) -> Optional[str]:
        if ALLORIGINS_JSON_RE.search(request_url):
            try:
                data = resp.json() or {}
            except ValueError:
                return None
            contents = data.get("contents") if isinstance(data, dict) else None
            return contents if isinstance(contents, str) else None
        return resp.text

    def fetch(self, url: str) -> Optional[ParsedFeed]:
        transport_errors: List[str] = []
        answered = False

        for template in self.proxy_templates:
            request_url = self.build_request_url(template, url)
            try:
                resp = self.session.get(request_url, headers={"User-Agent": USER_AGENT}, timeout=self.timeout)
            except requests.RequestException as e:
                logger.warning(f"{request_url} error: {e}")
                transport_errors.append(str(e))
                continue

            answered = True
            if not resp.ok:
                logger.warning(f"{request_url} returned status {resp.status_code}, trying next...")
                continue
            body = (self._read_body(request_url, resp) or "").lstrip("\ufeff").strip()
            if not body:
                logger.warning(f"{request_url} returned empty content, trying next...")
                continue
            if not body.startswith("<"):
                logger.warning(f"{request_url} returned non-XML content, trying next...")
                continue

            feed = parse_feed(body)
            if feed is not None:
                if not feed.items:
                    logger.warning(f"{request_url} parsed but has 0 items (feed title: {feed.title!r})")
                return feed
            logger.warning(f"{request_url} failed to parse XML. Sample: {body[:200]!r}")

        if not answered and transport_errors:
            raise FetchFailure(f"All feed sources failed for {url}: {transport_errors[-1]}", url=url)
        logger.error(f"No parseable feed from any source for {url}")
        return None

    async def fetch_async(self, url: str) -> Optional[ParsedFeed]:
        return await asyncio.to_thread(self.fetch, url)
