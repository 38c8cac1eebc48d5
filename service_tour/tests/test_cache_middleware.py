"""
Unit tests for the with_cache route decorator.
"""

import json

import pytest
from unittest.mock import MagicMock
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from fastapi.testclient import TestClient

from service_tour.app.caching import CACHE_HEADER, CacheManager, build_cached_response, with_cache
from shared.metrics import MetricsCollector


class TestWithCache:
    """Test cases for with_cache."""

    @pytest.fixture
    def cache(self):
        return CacheManager(max_size=50, logger=MagicMock())

    @pytest.fixture
    def calls(self):
        """Per-route handler call counter."""
        return {}

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("tour")

    @pytest.fixture
    def client(self, cache, calls, metrics):
        """Small app exercising each response kind."""
        app = FastAPI()

        def count(name):
            calls[name] = calls.get(name, 0) + 1
            return calls[name]

        @app.get("/json")
        @with_cache(cache, 60, metrics=metrics)
        async def json_route(request: Request):
            n = count("json")
            response = JSONResponse({"n": n, "q": request.query_params.get("q")})
            response.headers["X-Total-Count"] = "7"
            response.headers.append("Set-Cookie", "a=1")
            response.headers.append("Set-Cookie", "b=2")
            return response

        @app.get("/dict")
        @with_cache(cache)
        async def dict_route(request: Request):
            return {"n": count("dict")}

        @app.get("/sync")
        @with_cache(cache)
        def sync_route(request: Request):
            return JSONResponse({"n": count("sync")})

        @app.get("/text")
        @with_cache(cache, metrics=metrics)
        async def text_route(request: Request):
            return PlainTextResponse(f"plain {count('text')}")

        @app.get("/malformed")
        @with_cache(cache)
        async def malformed_route(request: Request):
            count("malformed")
            return Response(content=b"{not json", media_type="application/json")

        @app.get("/stream")
        @with_cache(cache)
        async def stream_route(request: Request):
            count("stream")
            return StreamingResponse(iter([b'{"a": 1}']), media_type="application/json")

        @app.get("/created")
        @with_cache(cache)
        async def created_route(request: Request):
            return JSONResponse({"n": count("created")}, status_code=201)

        @app.get("/missing")
        @with_cache(cache, cacheable_statuses=range(200, 300))
        async def missing_route(request: Request):
            return JSONResponse({"n": count("missing")}, status_code=404)

        @app.get("/items/{item_id}")
        @with_cache(cache)
        async def item_route(request: Request, item_id: str):
            return JSONResponse({"item": item_id, "n": count(item_id)})

        return TestClient(app)

    def test_first_request_is_miss_then_hit(self, client, calls):
        """Test the second identical request is replayed without the handler."""
        first = client.get("/json?q=seoul")
        second = client.get("/json?q=seoul")

        assert first.headers[CACHE_HEADER] == "MISS"
        assert second.headers[CACHE_HEADER] == "HIT"
        assert first.json() == second.json() == {"n": 1, "q": "seoul"}
        assert calls["json"] == 1

    def test_hit_replays_status_and_headers(self, client):
        client.get("/json")
        replay = client.get("/json")

        assert replay.status_code == 200
        assert replay.headers["content-type"].startswith("application/json")
        assert replay.headers["x-total-count"] == "7"
        assert replay.headers.get_list("set-cookie") == ["a=1", "b=2"]

    def test_query_order_shares_entry(self, client, calls):
        client.get("/json?q=a&page=1")
        response = client.get("/json?page=1&q=a")

        assert response.headers[CACHE_HEADER] == "HIT"
        assert calls["json"] == 1

    def test_different_query_is_separate_entry(self, client, calls):
        client.get("/json?q=a")
        response = client.get("/json?q=b")

        assert response.headers[CACHE_HEADER] == "MISS"
        assert calls["json"] == 2

    def test_stored_entry_shape(self, client, cache):
        """Test the stored value holds the parsed body, status and headers."""
        client.get("/json?q=x")

        stored = cache.get("GET:/json?q=x")

        assert stored["body"] == {"n": 1, "q": "x"}
        assert stored["status"] == 200
        names = [name for name, _ in stored["headers"]]
        assert "content-length" not in names
        assert "x-cache" not in names
        assert ["x-total-count", "7"] in stored["headers"]

    def test_dict_return_is_cached(self, client, calls):
        client.get("/dict")
        response = client.get("/dict")

        assert response.headers[CACHE_HEADER] == "HIT"
        assert response.json() == {"n": 1}
        assert calls["dict"] == 1

    def test_sync_handler_is_cached(self, client, calls):
        client.get("/sync")
        response = client.get("/sync")

        assert response.headers[CACHE_HEADER] == "HIT"
        assert calls["sync"] == 1

    def test_non_json_is_bypassed(self, client, calls, cache):
        """Test non-JSON responses pass through untouched and uncached."""
        first = client.get("/text")
        second = client.get("/text")

        assert first.headers[CACHE_HEADER] == "BYPASS"
        assert first.text == "plain 1"
        assert second.text == "plain 2"
        assert cache.size() == 0

    def test_malformed_json_is_bypassed(self, client, calls):
        response = client.get("/malformed")
        client.get("/malformed")

        assert response.headers[CACHE_HEADER] == "BYPASS"
        assert response.content == b"{not json"
        assert calls["malformed"] == 2

    def test_streaming_response_is_bypassed(self, client, calls):
        response = client.get("/stream")

        assert response.headers[CACHE_HEADER] == "BYPASS"
        assert response.json() == {"a": 1}

    def test_non_200_json_cached_by_default(self, client, calls):
        client.get("/created")
        response = client.get("/created")

        assert response.status_code == 201
        assert response.headers[CACHE_HEADER] == "HIT"
        assert calls["created"] == 1

    def test_excluded_status_is_bypassed(self, client, calls, cache):
        response = client.get("/missing")
        client.get("/missing")

        assert response.status_code == 404
        assert response.headers[CACHE_HEADER] == "BYPASS"
        assert calls["missing"] == 2
        assert cache.size() == 0

    def test_path_parameters_reach_handler(self, client, calls):
        client.get("/items/1")
        response = client.get("/items/2")

        assert response.json() == {"item": "2", "n": 1}
        assert response.headers[CACHE_HEADER] == "MISS"

    def test_pre_seeded_entry_is_replayed(self, client, cache, calls):
        """Test entries written directly to the cache are served as hits."""
        cache.set("GET:/json", build_cached_response({"seeded": True}))

        response = client.get("/json")

        assert response.headers[CACHE_HEADER] == "HIT"
        assert response.json() == {"seeded": True}
        assert "json" not in calls

    def test_expired_entry_calls_handler_again(self, client, cache, calls):
        cache.set("GET:/dict", build_cached_response({"stale": True}), 0)

        response = client.get("/dict")

        assert response.headers[CACHE_HEADER] == "MISS"
        assert response.json() == {"n": 1}

    def test_metrics_are_recorded(self, client, metrics):
        client.get("/json")
        client.get("/json")
        client.get("/text")

        exported = metrics.export().decode()

        assert 'cache_requests_total{status="MISS"} 1.0' in exported
        assert 'cache_requests_total{status="HIT"} 1.0' in exported
        assert 'cache_requests_total{status="BYPASS"} 1.0' in exported
        assert "cache_entries 1.0" in exported


class TestBuildCachedResponse:
    """Test cases for build_cached_response."""

    def test_defaults(self):
        assert build_cached_response({"a": 1}) == {
            "body": {"a": 1},
            "status": 200,
            "headers": [["content-type", "application/json"]],
        }

    def test_is_json_serializable(self):
        stored = build_cached_response([1, 2], 201, [("x-total-count", "2")])

        assert json.loads(json.dumps(stored))["headers"] == [["x-total-count", "2"]]
