import json
import os
import unittest
from unittest import mock

from craftboard.config import ConfigReader, Settings
from craftboard.errors import ConfigurationMissing
from craftboard.storage.kv_store import MemoryKeyValueStore


class TestConfigReader(unittest.TestCase):
    def setUp(self):
        self.store = MemoryKeyValueStore()
        self.config = ConfigReader(self.store)

    def test_cache_expiry_defaults_to_60_minutes(self):
        self.assertEqual(self.config.cache_expiry_minutes(), 60)
        self.assertEqual(self.config.cache_ttl_ms(), 60 * 60 * 1000)

    def test_zero_minutes_disables_caching(self):
        self.config.set_cache_expiry_minutes(0)
        self.assertEqual(self.config.cache_ttl_ms(), 0)

    def test_corrupt_or_negative_expiry_falls_back_to_default(self):
        self.store.set("cache-expiry-minutes", "soon")
        self.assertEqual(self.config.cache_expiry_minutes(), 60)
        self.store.set("cache-expiry-minutes", "-5")
        self.assertEqual(self.config.cache_expiry_minutes(), 60)

    def test_legacy_hours_setting_is_migrated(self):
        self.store.set("cache-expiry-hours", "2")
        self.assertEqual(self.config.cache_expiry_minutes(), 120)
        self.assertEqual(self.store.get("cache-expiry-minutes"), "120")
        self.assertIsNone(self.store.get("cache-expiry-hours"))

    def test_display_mode_degrades_to_default(self):
        self.assertEqual(self.config.display_mode("rss"), "list")
        self.store.set("rss-display-mode", "carousel")
        self.assertEqual(self.config.display_mode("rss"), "list")
        self.config.set_display_mode("rss", "Grid")
        self.assertEqual(self.config.display_mode("rss"), "grid")
        with self.assertRaises(ValueError):
            self.config.set_display_mode("rss", "carousel")

    def test_proxy_templates(self):
        self.assertEqual(self.config.proxy_templates(), ["{url}"])
        self.store.set("rss-proxy-urls", "[broken")
        self.assertEqual(self.config.proxy_templates(), ["{url}"])
        self.store.set("rss-proxy-urls", json.dumps(["https://proxy.example/?u={url}", "no-placeholder"]))
        self.assertEqual(self.config.proxy_templates(), ["https://proxy.example/?u={url}"])

    def test_saved_tags_are_normalized(self):
        self.config.set_saved_tags(["#Work", "health"])
        self.assertEqual(self.config.saved_tags(), ["work", "health"])
        self.store.set("saved-tags", json.dumps({"not": "a list"}))
        self.assertEqual(self.config.saved_tags(), [])


class TestSettings(unittest.TestCase):
    def test_from_env(self):
        env = {
            "CRAFT_API_URL": "https://api.example.com/links/abc/",
            "CRAFT_API_TOKEN": "tok",
            "RSS_COLLECTION_ID": "rss1",
            "TRACKED_TAGS": "#Work, health ,",
            "REQUEST_TIMEOUT": "oops",
        }
        with mock.patch("craftboard.config.load_dotenv"), mock.patch.dict(os.environ, env, clear=True):
            settings = Settings.from_env()
        self.assertEqual(settings.api_url, "https://api.example.com/links/abc")
        self.assertEqual(settings.tracked_tags, ["work", "health"])
        self.assertEqual(settings.request_timeout, 30)
        settings.require_api()

    def test_require_api_without_url(self):
        with self.assertRaises(ConfigurationMissing):
            Settings().require_api()


if __name__ == "__main__":
    unittest.main()
