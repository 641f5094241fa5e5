"""Configuration for craftboard.

Two layers:
- Settings: process configuration from the environment (.env supported)
- ConfigReader: small user preferences persisted in the key-value store
  (cache expiry, display modes, feed proxies, tracked tags)

Neither layer raises on bad values; they degrade to typed defaults.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

from craftboard.errors import ConfigurationMissing, StoreError
from craftboard.storage.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_CACHE_EXPIRY_MINUTES = 60
DISPLAY_MODES = ("list", "grid", "compact")
DEFAULT_DISPLAY_MODE = "list"
DIRECT_FETCH_TEMPLATE = "{url}"

# Key names in the persistent store
CACHE_EXPIRY_MINUTES_KEY = "cache-expiry-minutes"
LEGACY_CACHE_EXPIRY_HOURS_KEY = "cache-expiry-hours"
PROXY_URLS_KEY = "rss-proxy-urls"
SAVED_TAGS_KEY = "saved-tags"


def _split_csv(value: str) -> List[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    try:
        return int(raw) if raw.strip() else default
    except ValueError:
        logger.warning(f"{name}={raw!r} is not an integer, using {default}")
        return default


@dataclass
class Settings:
    """Process-wide settings"""
    api_url: str = ""
    api_token: str = ""
    rss_collection_id: str = ""
    bookmarks_collection_id: str = ""
    tracked_tags: List[str] = field(default_factory=list)
    feed_proxy_urls: List[str] = field(default_factory=list)
    kv_store_path: str = "state/craftboard.db"

    request_timeout: int = 30   # seconds, document API
    feed_timeout: int = 15      # seconds, per feed request
    refresh_interval_minutes: int = 30

    @classmethod
    def from_env(cls) -> 'Settings':
        load_dotenv()
        return cls(
            api_url=os.getenv('CRAFT_API_URL', '').strip().rstrip('/'),
            api_token=os.getenv('CRAFT_API_TOKEN', '').strip(),
            rss_collection_id=os.getenv('RSS_COLLECTION_ID', '').strip(),
            bookmarks_collection_id=os.getenv('BOOKMARKS_COLLECTION_ID', '').strip(),
            tracked_tags=[t.lower().lstrip('#') for t in _split_csv(os.getenv('TRACKED_TAGS', ''))],
            feed_proxy_urls=_split_csv(os.getenv('FEED_PROXY_URLS', '')),
            kv_store_path=os.getenv('KV_STORE_PATH', 'state/craftboard.db'),
            request_timeout=_int_env('REQUEST_TIMEOUT', 30),
            feed_timeout=_int_env('FEED_TIMEOUT', 15),
            refresh_interval_minutes=_int_env('REFRESH_INTERVAL_MINUTES', 30),
        )

    def require_api(self) -> None:
        if not self.api_url:
            raise ConfigurationMissing("Craft API URL not configured")


class ConfigReader:
    """Typed access to scalar preferences in the key-value store."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def _read(self, key: str) -> Optional[str]:
        try:
            return self.store.get(key)
        except StoreError as e:
            logger.error(f"Error reading setting {key}: {e}")
            return None

    def _write(self, key: str, value: str) -> None:
        try:
            self.store.set(key, value)
        except StoreError as e:
            logger.error(f"Error saving setting {key}: {e}")

    def _remove(self, key: str) -> None:
        try:
            self.store.remove(key)
        except StoreError as e:
            logger.error(f"Error removing setting {key}: {e}")

    # -----------------------------
    # Cache expiry
    # -----------------------------
    def cache_expiry_minutes(self) -> int:
        minutes = _non_negative_int(self._read(CACHE_EXPIRY_MINUTES_KEY))
        if minutes is not None:
            return minutes

        # Older installs stored whole hours
        hours = _non_negative_int(self._read(LEGACY_CACHE_EXPIRY_HOURS_KEY))
        if hours is not None:
            minutes = hours * 60
            self._write(CACHE_EXPIRY_MINUTES_KEY, str(minutes))
            self._remove(LEGACY_CACHE_EXPIRY_HOURS_KEY)
            return minutes

        return DEFAULT_CACHE_EXPIRY_MINUTES

    def set_cache_expiry_minutes(self, minutes: int) -> None:
        self._write(CACHE_EXPIRY_MINUTES_KEY, str(max(0, int(minutes))))

    def cache_ttl_ms(self) -> int:
        """0 disables caching."""
        return self.cache_expiry_minutes() * 60 * 1000

    # -----------------------------
    # Display mode per view
    # -----------------------------
    def display_mode(self, view: str) -> str:
        mode = (self._read(f"{view}-display-mode") or "").strip().lower()
        return mode if mode in DISPLAY_MODES else DEFAULT_DISPLAY_MODE

    def set_display_mode(self, view: str, mode: str) -> None:
        mode = (mode or "").strip().lower()
        if mode not in DISPLAY_MODES:
            raise ValueError(f"Unknown display mode={mode}, must be one of {list(DISPLAY_MODES)}")
        self._write(f"{view}-display-mode", mode)

    # -----------------------------
    # JSON lists
    # -----------------------------
    def proxy_templates(self) -> List[str]:
        templates = self._read_str_list(PROXY_URLS_KEY)
        templates = [t for t in templates if "{url}" in t]
        return templates or [DIRECT_FETCH_TEMPLATE]

    def set_proxy_templates(self, templates: List[str]) -> None:
        self._write(PROXY_URLS_KEY, json.dumps([str(t) for t in templates]))

    def saved_tags(self) -> List[str]:
        return [t.lower().lstrip("#") for t in self._read_str_list(SAVED_TAGS_KEY) if t.strip()]

    def set_saved_tags(self, tags: List[str]) -> None:
        self._write(SAVED_TAGS_KEY, json.dumps([str(t) for t in tags]))

    def _read_str_list(self, key: str) -> List[str]:
        raw = self._read(key)
        if not raw:
            return []
        try:
            value = json.loads(raw)
        except ValueError:
            logger.warning(f"Setting {key} is not valid JSON, ignoring")
            return []
        if not isinstance(value, list):
            return []
        return [str(v) for v in value if isinstance(v, (str, int, float))]


def _non_negative_int(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        value = int(str(raw).strip())
    except ValueError:
        return None
    return value if value >= 0 else None
