import unittest

from craftboard.analytics.tag_logs import (
    TagLogLoader,
    build_search_pattern,
    entries_from_block_tree,
    scoped_tags,
    tag_set_key,
)
from craftboard.errors import FetchFailure
from craftboard.storage.kv_store import MemoryKeyValueStore
from craftboard.storage.ttl_cache import TTLCache

SEARCH_ITEMS = [
    {"documentId": "d1", "title": "Journal", "markdown": "shipped it #work",
     "createdAt": "2024-03-01T09:00:00Z"},
    {"documentId": "d2", "markdown": "went to a #workshop", "createdAt": "2024-03-02T09:00:00Z"},
    {"documentId": "d3", "title": "Notes", "markdown": "deep dive #Work/Deep and #health",
     "createdAt": "2024-03-03T09:00:00Z"},
    {"documentId": "d4", "title": "Undated", "markdown": "#health check"},
]


class FakeClient:
    def __init__(self, items=None, blocks=None):
        self.items = items if items is not None else SEARCH_ITEMS
        self.blocks = blocks or {}
        self.searches = []
        self.block_calls = []

    def search_documents(self, regexps, *, fetch_metadata=True):
        self.searches.append(regexps)
        return {"items": list(self.items)}

    def get_blocks(self, document_id, *, fetch_metadata=True, max_depth=None):
        self.block_calls.append(document_id)
        block = self.blocks.get(document_id)
        if isinstance(block, Exception):
            raise block
        return block or {}


def make_loader(client):
    cache = TTLCache(MemoryKeyValueStore(), "tags-cache-", ttl_ms=lambda: 60 * 60 * 1000)
    return TagLogLoader(client, cache)


class TestHelpers(unittest.TestCase):
    def test_tag_set_key_ignores_order_and_case(self):
        self.assertEqual(tag_set_key(["Work", "#health"]), tag_set_key(["health", "work"]))
        self.assertNotEqual(tag_set_key(["work"]), tag_set_key(["work", "health"]))

    def test_build_search_pattern(self):
        self.assertEqual(build_search_pattern(["#Work", "health"]), "#work(?:/[\\w-]+)?|#health(?:/[\\w-]+)?")

    def test_scoped_tags_follow_text_order(self):
        self.assertEqual(
            scoped_tags("#work/deep y #health #work #other", ["work", "health"]),
            ["work/deep", "health", "work"],
        )


class TestTagLogLoader(unittest.TestCase):
    def test_load_logs(self):
        client = FakeClient()
        logs = make_loader(client).load_logs(["Work", "health"])

        self.assertEqual([e.document_id for e in logs], ["d3", "d1", "d4"])
        self.assertEqual(logs[0].tags, ("work/deep", "health"))
        self.assertEqual(logs[1].document_title, "Journal")
        self.assertEqual(logs[2].document_title, "Undated")
        self.assertEqual(len(client.searches), 1)

    def test_cached_until_forced(self):
        client = FakeClient()
        loader = make_loader(client)
        first = loader.load_logs(["work"])
        self.assertEqual(loader.load_logs(["WORK"]), first)
        self.assertEqual(len(client.searches), 1)
        loader.load_logs(["work"], force_refresh=True)
        self.assertEqual(len(client.searches), 2)

    def test_no_tags_no_search(self):
        client = FakeClient()
        self.assertEqual(make_loader(client).load_logs([]), [])
        self.assertEqual(client.searches, [])

    def test_expand_blocks_survives_a_failing_document(self):
        tree = {
            "id": "root", "markdown": "# Journal",
            "content": [
                {"id": "b1", "markdown": "morning #work", "metadata": {"createdAt": "2024-03-01T08:00:00Z"}},
                {"id": "b2", "markdown": "nothing here",
                 "content": [{"id": "b3", "markdown": "nested #work/deep"}]},
            ],
        }
        client = FakeClient(
            items=[{"documentId": "d1", "title": "Journal", "markdown": "#work"},
                   {"documentId": "d2", "markdown": "#work"}],
            blocks={"d1": tree, "d2": FetchFailure("Failed to fetch blocks for d2: 404 Not Found")},
        )
        loader = make_loader(client)
        logs = loader.load_logs(["work"], expand_blocks=True)
        self.assertEqual(sorted(e.block_id for e in logs), ["b1", "b3"])
        self.assertEqual(sorted(client.block_calls), ["d1", "d2"])
        self.assertEqual((loader.completed_calls, loader.total_calls), (3, 3))

    def test_non_dict_search_hits_are_skipped(self):
        tree = {"id": "b1", "markdown": "#work", "metadata": "not a mapping"}
        client = FakeClient(items=["junk", None, {"documentId": "d1", "markdown": "#work"}], blocks={"d1": tree})
        for expand in (False, True):
            logs = make_loader(client).load_logs(["work"], expand_blocks=expand)
            self.assertEqual([e.document_id for e in logs], ["d1"])

    def test_block_tree_walk_order(self):
        tree = {"id": "r", "markdown": "#a", "content": [{"id": "x", "markdown": "#a"}, {"id": "y", "markdown": "#a"}]}
        self.assertEqual([e.block_id for e in entries_from_block_tree(tree, "d", "Doc", ["a"])], ["r", "x", "y"])

    def test_documents_by_tags_merges_per_document(self):
        client = FakeClient(items=[
            {"documentId": "d1", "title": "Day", "markdown": "#work", "dailyNoteDate": "2024-03-01"},
            {"documentId": "d1", "title": "Day", "markdown": "#health"},
            {"documentId": "d2", "title": "Other", "markdown": "#nothing"},
        ])
        loader = make_loader(client)
        docs = loader.documents_by_tags(["work", "health"])
        self.assertEqual(list(docs), ["d1"])
        self.assertEqual(docs["d1"].tags, ("work", "health"))
        self.assertEqual(docs["d1"].daily_note_date, "2024-03-01")

        self.assertEqual(loader.documents_by_tags(["health", "work"]), docs)
        self.assertEqual(len(client.searches), 1)


if __name__ == "__main__":
    unittest.main()
