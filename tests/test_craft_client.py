import unittest

import requests

from craftboard.api.craft_client import (
    Collection,
    CraftClient,
    find_collection_by_name,
    parse_collection_schema,
)
from craftboard.errors import ConfigurationMissing, FetchFailure, ParseFailure

API = "https://connect.example.com/api/v1/links/abc"


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, reason="OK"):
        self.status_code = status_code
        self._json = json_data
        self.reason = reason

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._json is None:
            raise ValueError("Expecting value")
        return self._json


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


class TestCraftClient(unittest.TestCase):
    def test_collection_items_with_bearer_token(self):
        session = FakeSession(FakeResponse(json_data={"items": [{"id": "1", "properties": {}}, "junk"]}))
        client = CraftClient(API + "/", "secret", timeout=7, session=session)
        self.assertEqual(client.get_collection_items("c1"), [{"id": "1", "properties": {}}])
        call = session.calls[0]
        self.assertEqual(call["url"], f"{API}/collections/c1/items")
        self.assertEqual(call["headers"]["Authorization"], "Bearer secret")
        self.assertEqual(call["timeout"], 7)

    def test_no_token_no_auth_header(self):
        session = FakeSession(FakeResponse(json_data={"items": []}))
        CraftClient(API, session=session).list_collections()
        self.assertNotIn("Authorization", session.calls[0]["headers"])

    def test_missing_url(self):
        with self.assertRaises(ConfigurationMissing):
            CraftClient("", session=FakeSession()).get_collection_items("c1")

    def test_http_error(self):
        session = FakeSession(FakeResponse(401, reason="Unauthorized"))
        with self.assertRaises(FetchFailure) as ctx:
            CraftClient(API, session=session).get_collection_items("c1")
        self.assertEqual(ctx.exception.status_code, 401)
        self.assertIn("401 Unauthorized", str(ctx.exception))

    def test_transport_error(self):
        session = FakeSession(error=requests.ConnectionError("connection refused"))
        with self.assertRaises(FetchFailure):
            CraftClient(API, session=session).list_collections()

    def test_non_json_body(self):
        with self.assertRaises(ParseFailure):
            CraftClient(API, session=FakeSession(FakeResponse())).get_collection_items("c1")

    def test_search_documents_params(self):
        session = FakeSession(FakeResponse(json_data={}))
        result = CraftClient(API, session=session).search_documents("#work(?:/[\\w-]+)?")
        self.assertEqual(result, {"items": []})
        self.assertEqual(session.calls[0]["params"], {"regexps": "#work(?:/[\\w-]+)?", "fetchMetadata": "true"})

    def test_list_collections_tolerates_odd_payloads(self):
        for payload in ([{"id": "c1"}], {"items": "nope"}):
            client = CraftClient(API, session=FakeSession(FakeResponse(json_data=payload)))
            self.assertEqual(client.list_collections(), [])
        data = {"items": [{"id": "c1", "name": "X", "itemCount": "many"}]}
        client = CraftClient(API, session=FakeSession(FakeResponse(json_data=data)))
        self.assertEqual(client.list_collections()[0].item_count, 0)

    def test_list_collections(self):
        data = {"items": [{"id": "c1", "name": "Craftboard RSS", "itemCount": 3}, {"name": "no id"}]}
        collections = CraftClient(API, session=FakeSession(FakeResponse(json_data=data))).list_collections()
        self.assertEqual(collections, [Collection(id="c1", name="Craftboard RSS", item_count=3)])


class TestSchemaAndLookup(unittest.TestCase):
    def test_parse_collection_schema(self):
        props = {
            "URL": {"type": "string", "title": "URL"},
            "Category": {"type": "string", "description": 'Existing options: "News", "Tech"'},
            "tags": {"type": "array", "items": {"type": "string"}},
            "related": {"type": "object", "properties": {"relations": {}}},
        }
        raw = {"properties": {"items": {"items": {"properties": {"properties": {"properties": props}}}}}}
        parsed = {p.key: p for p in parse_collection_schema(raw)}
        self.assertEqual(parsed["URL"].type, "string")
        self.assertEqual(parsed["Category"].options, ["News", "Tech"])
        self.assertEqual(parsed["Category"].name, "Category")
        self.assertEqual(parsed["tags"].type, "multiselect")
        self.assertTrue(parsed["related"].is_relation)
        self.assertEqual(parse_collection_schema({"properties": {}}), [])

    def test_find_collection_by_name(self):
        collections = [
            Collection(id="1", name="Reading list"),
            Collection(id="2", name="Craftboard RSS Feeds"),
            Collection(id="3", name="Craftboard Bookmarks"),
        ]
        self.assertEqual(find_collection_by_name(collections, ["bookmarks"]).id, "3")
        self.assertEqual(find_collection_by_name(collections, ["rss"]).id, "2")
        self.assertIsNone(find_collection_by_name(collections, ["reading"]))


if __name__ == "__main__":
    unittest.main()
