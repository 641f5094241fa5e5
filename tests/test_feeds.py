import json
import unittest

import requests

from craftboard.errors import FetchFailure
from craftboard.ingestion.feeds import FeedFetcher, parse_feed

RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example News</title>
    <link>https://news.example.com/</link>
    <description>All the news</description>
    <item>
      <title>First story</title>
      <link>https://news.example.com/1</link>
      <description>Story one</description>
      <pubDate>Mon, 04 Mar 2024 10:00:00 GMT</pubDate>
      <guid>story-1</guid>
    </item>
    <item>
      <link>https://news.example.com/2</link>
      <description>Just a short note</description>
    </item>
    <item>
      <title>Untitled</title>
      <link>https://www.example.org/post</link>
    </item>
    <item>
      <title>No link here</title>
    </item>
  </channel>
</rss>
"""

ATOM = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom Blog</title>
  <link href="https://blog.example.com/"/>
  <id>urn:blog</id>
  <updated>2024-03-01T00:00:00Z</updated>
  <entry>
    <title>Hello Atom</title>
    <link href="https://blog.example.com/hello"/>
    <id>urn:blog:hello</id>
    <updated>2024-03-01T00:00:00Z</updated>
    <summary>Greetings</summary>
  </entry>
</feed>
"""


class FakeResponse:
    def __init__(self, status_code=200, text="", json_data=None):
        self.status_code = status_code
        self.text = text
        self._json = json_data
        self.reason = "OK" if status_code < 400 else "Error"

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._json is None:
            raise ValueError("not json")
        return self._json


class FakeSession:
    def __init__(self, responses):
        self.responses = responses
        self.requested = []

    def get(self, url, headers=None, timeout=None, params=None):
        self.requested.append(url)
        resp = self.responses.get(url)
        if isinstance(resp, Exception):
            raise resp
        if resp is None:
            raise requests.ConnectionError(f"no route to {url}")
        return resp


class TestParseFeed(unittest.TestCase):
    def test_rss(self):
        feed = parse_feed(RSS)
        self.assertEqual(feed.title, "Example News")
        self.assertEqual(feed.link, "https://news.example.com/")
        self.assertEqual([i.link for i in feed.items],
                         ["https://news.example.com/1", "https://news.example.com/2", "https://www.example.org/post"])
        first = feed.items[0]
        self.assertEqual(first.title, "First story")
        self.assertEqual(first.guid, "story-1")
        self.assertTrue(first.pub_date)

    def test_item_title_fallbacks(self):
        items = parse_feed(RSS).items
        self.assertEqual(items[1].title, "Just a short note")
        self.assertEqual(items[2].title, "example.org")

    def test_atom(self):
        feed = parse_feed(ATOM)
        self.assertEqual(feed.title, "Atom Blog")
        self.assertEqual(len(feed.items), 1)
        self.assertEqual(feed.items[0].link, "https://blog.example.com/hello")
        self.assertEqual(feed.items[0].description, "Greetings")

    def test_not_a_feed(self):
        self.assertIsNone(parse_feed(""))
        self.assertIsNone(parse_feed("just some words"))


class TestFeedFetcher(unittest.TestCase):
    URL = "https://news.example.com/rss"

    def test_direct_fetch(self):
        session = FakeSession({self.URL: FakeResponse(text="\ufeff" + RSS)})
        feed = FeedFetcher(session=session).fetch(self.URL)
        self.assertEqual(feed.title, "Example News")
        self.assertEqual(session.requested, [self.URL])

    def test_falls_through_proxies_in_order(self):
        proxies = ["https://p1.example/?u={url}", "https://p2.example/?u={url}"]
        fetcher = FeedFetcher(proxies, session=None)
        first = fetcher.build_request_url(proxies[0], self.URL)
        second = fetcher.build_request_url(proxies[1], self.URL)
        self.assertEqual(first, "https://p1.example/?u=https%3A%2F%2Fnews.example.com%2Frss")

        fetcher.session = FakeSession({first: FakeResponse(502), second: FakeResponse(text=RSS)})
        self.assertEqual(fetcher.fetch(self.URL).title, "Example News")
        self.assertEqual(fetcher.session.requested, [first, second])

    def test_allorigins_json_body(self):
        template = "https://api.allorigins.win/get?url={url}"
        fetcher = FeedFetcher([template])
        request_url = fetcher.build_request_url(template, self.URL)
        fetcher.session = FakeSession({request_url: FakeResponse(json_data={"contents": ATOM})})
        self.assertEqual(fetcher.fetch(self.URL).title, "Atom Blog")

    def test_answered_but_unparseable_is_none(self):
        session = FakeSession({self.URL: FakeResponse(text=json.dumps({"error": "nope"}))})
        self.assertIsNone(FeedFetcher(session=session).fetch(self.URL))

        session = FakeSession({self.URL: FakeResponse(text="   ")})
        self.assertIsNone(FeedFetcher(session=session).fetch(self.URL))

    def test_unreachable_everywhere_raises(self):
        fetcher = FeedFetcher(["{url}", "https://p1.example/?u={url}"], session=FakeSession({}))
        with self.assertRaises(FetchFailure) as ctx:
            fetcher.fetch(self.URL)
        self.assertEqual(ctx.exception.url, self.URL)


if __name__ == "__main__":
    unittest.main()
