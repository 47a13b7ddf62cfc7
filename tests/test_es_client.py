import json

import httpx
import pytest

from common.errors import IndexBackendError
from indexing import get_backend
from indexing.backend import build_mappings
from indexing.es_client import ElasticsearchBackend
from indexing.memory_backend import InMemoryIndexBackend


class RecordingTransport:
    """Answers requests from a route table and keeps every request it saw."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"error": "not found"})
        if callable(handler):
            return handler(request)
        status, body = handler
        return httpx.Response(status, json=body)


def make_backend(routes):
    recorder = RecordingTransport(routes)
    client = httpx.Client(base_url="http://es.test", transport=httpx.MockTransport(recorder))
    return ElasticsearchBackend(client=client), recorder


def test_create_index_sends_mappings():
    backend, recorder = make_backend({("PUT", "/urindex_1"): (200, {"acknowledged": True})})
    mappings = build_mappings(["category"], {})

    backend.create_index("urindex_1", mappings)

    request = recorder.requests[0]
    assert json.loads(request.content) == mappings
    assert json.loads(request.content)["mappings"]["properties"]["category"] == {"type": "keyword", "norms": False}


def test_create_index_error_raises():
    backend, _ = make_backend({("PUT", "/urindex_1"): (400, {"error": "resource_already_exists_exception"})})
    with pytest.raises(IndexBackendError):
        backend.create_index("urindex_1", build_mappings([]))


def test_bulk_write_sends_ndjson_then_refreshes():
    backend, recorder = make_backend(
        {
            ("POST", "/_bulk"): (200, {"errors": False, "items": []}),
            ("POST", "/urindex_1/_refresh"): (200, {}),
        }
    )

    written = backend.bulk_write("urindex_1", [{"id": "i1", "category": ["shoes"]}, {"id": "i2"}])

    assert written == 2
    bulk, refresh = recorder.requests
    assert bulk.headers["content-type"] == "application/x-ndjson"
    lines = [json.loads(line) for line in bulk.content.decode().splitlines()]
    assert lines == [
        {"index": {"_index": "urindex_1", "_id": "i1"}},
        {"id": "i1", "category": ["shoes"]},
        {"index": {"_index": "urindex_1", "_id": "i2"}},
        {"id": "i2"},
    ]
    assert refresh.url.path == "/urindex_1/_refresh"


def test_bulk_write_nothing_sends_nothing():
    backend, recorder = make_backend({})
    assert backend.bulk_write("urindex_1", []) == 0
    assert recorder.requests == []


def test_bulk_item_errors_raise():
    body = {"errors": True, "items": [{"index": {"_id": "i1", "error": {"type": "mapper_parsing_exception"}}}]}
    backend, _ = make_backend({("POST", "/_bulk"): (200, body)})

    with pytest.raises(IndexBackendError, match="1 of 1"):
        backend.bulk_write("urindex_1", [{"id": "i1"}])


def test_swap_alias_is_one_request():
    backend, recorder = make_backend({("POST", "/_aliases"): (200, {"acknowledged": True})})

    backend.swap_alias("urindex", "urindex_1", "urindex_2")

    assert len(recorder.requests) == 1
    assert json.loads(recorder.requests[0].content) == {
        "actions": [
            {"remove": {"index": "urindex_1", "alias": "urindex"}},
            {"add": {"index": "urindex_2", "alias": "urindex"}},
        ]
    }


def test_first_swap_only_adds():
    backend, recorder = make_backend({("POST", "/_aliases"): (200, {"acknowledged": True})})
    backend.swap_alias("urindex", None, "urindex_1")
    assert json.loads(recorder.requests[0].content) == {"actions": [{"add": {"index": "urindex_1", "alias": "urindex"}}]}


def test_get_alias_target():
    backend, _ = make_backend({("GET", "/_alias/urindex"): (200, {"urindex_2": {"aliases": {"urindex": {}}}})})
    assert backend.get_alias_target("urindex") == "urindex_2"


def test_missing_alias_is_none():
    backend, _ = make_backend({})
    assert backend.get_alias_target("urindex") is None


def test_delete_index():
    backend, recorder = make_backend({("DELETE", "/urindex_1"): (200, {"acknowledged": True})})
    backend.delete_index("urindex_1")
    assert recorder.requests[0].method == "DELETE"


def test_read_all_scrolls_and_clears():
    pages = iter(
        [
            {"_scroll_id": "s1", "hits": {"hits": [{"_source": {"id": "i2"}}]}},
            {"_scroll_id": "s1", "hits": {"hits": []}},
        ]
    )
    backend, recorder = make_backend(
        {
            ("POST", "/urindex/_search"): (200, {"_scroll_id": "s1", "hits": {"hits": [{"_source": {"id": "i1"}}]}}),
            ("POST", "/_search/scroll"): lambda request: httpx.Response(200, json=next(pages)),
            ("DELETE", "/_search/scroll"): (200, {"succeeded": True}),
        }
    )

    docs = list(backend.read_all("urindex"))

    assert docs == [{"id": "i1"}, {"id": "i2"}]
    assert recorder.requests[-1].method == "DELETE"
    assert json.loads(recorder.requests[-1].content) == {"scroll_id": "s1"}


def test_get_backend():
    assert isinstance(get_backend("memory"), InMemoryIndexBackend)
    assert isinstance(get_backend("elasticsearch", base_url="http://es.test"), ElasticsearchBackend)
    with pytest.raises(ValueError):
        get_backend("solr")
