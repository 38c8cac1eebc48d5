"""
Unit tests for cache key generation and wildcard matching.
"""

from types import SimpleNamespace

import pytest
from starlette.requests import Request

from service_tour.app.caching.keys import format_cache_key, generate_cache_key
from service_tour.app.caching.wildcard import compile_wildcard, has_wildcard, wildcard_to_regex


def make_request(path: str, query: str = "", method: str = "GET") -> Request:
    """Build a Starlette request from a bare ASGI scope."""
    return Request({
        "type": "http",
        "method": method,
        "path": path,
        "query_string": query.encode(),
        "headers": [],
    })


class TestGenerateCacheKey:
    """Test cases for generate_cache_key."""

    def test_path_without_query(self):
        assert generate_cache_key(make_request("/api/tour/areas")) == "GET:/api/tour/areas"

    def test_query_is_sorted(self):
        """Test parameter order does not change the key."""
        first = generate_cache_key(make_request("/api/tour/search", "pageNo=2&keyword=seoul"))
        second = generate_cache_key(make_request("/api/tour/search", "keyword=seoul&pageNo=2"))

        assert first == second == "GET:/api/tour/search?keyword=seoul&pageNo=2"

    def test_method_is_part_of_key(self):
        get_key = generate_cache_key(make_request("/items", method="GET"))
        post_key = generate_cache_key(make_request("/items", method="POST"))

        assert get_key != post_key
        assert post_key == "POST:/items"

    def test_method_is_upper_cased(self):
        assert generate_cache_key(make_request("/items", method="get")) == "GET:/items"

    def test_missing_method_defaults_to_get(self):
        """Test request-like objects without a method use GET."""
        request = SimpleNamespace(
            method=None,
            url=SimpleNamespace(path="/items"),
            query_params={"b": "2", "a": "1"},
        )

        assert generate_cache_key(request) == "GET:/items?a=1&b=2"

    def test_repeated_parameters_are_kept(self):
        key = generate_cache_key(make_request("/items", "tag=b&tag=a"))

        assert key == "GET:/items?tag=a&tag=b"

    def test_values_are_encoded(self):
        key = generate_cache_key(make_request("/items", "keyword=%EC%84%9C%EC%9A%B8+tower"))

        assert key == "GET:/items?keyword=%EC%84%9C%EC%9A%B8+tower"

    def test_different_values_give_different_keys(self):
        first = generate_cache_key(make_request("/items", "page=1"))
        second = generate_cache_key(make_request("/items", "page=2"))

        assert first != second


class TestFormatCacheKey:
    """Test cases for format_cache_key."""

    def test_matches_request_key(self):
        """Test a key built by hand equals the key of the matching request."""
        request = make_request("/api/tour/detail/7", "b=2&a=1")

        assert format_cache_key("GET", "/api/tour/detail/7", [("b", "2"), ("a", "1")]) == generate_cache_key(request)

    def test_without_params(self):
        assert format_cache_key("get", "/api/tour/detail/7") == "GET:/api/tour/detail/7"

    def test_empty_method_defaults_to_get(self):
        assert format_cache_key("", "/items", [("page", 1)]) == "GET:/items?page=1"


class TestWildcard:
    """Test cases for glob matching."""

    def test_has_wildcard(self):
        assert has_wildcard("tour:*")
        assert not has_wildcard("tour:1")

    @pytest.mark.parametrize("pattern,candidate,expected", [
        ("tour:*", "tour:1", True),
        ("tour:*", "tour:", True),
        ("tour:*", "user:1", False),
        ("*:detail", "tour:detail", True),
        ("GET:*search*", "GET:/api/tour/search?keyword=a", True),
        ("a.c", "abc", False),
        ("a+b*", "a+bc", True),
        ("a+b*", "aab", False),
        ("(x)*", "(x)y", True),
        ("tour:*", "tour:line\nbreak", True),
    ])
    def test_matching(self, pattern, candidate, expected):
        """Test only '*' is special and matches whole strings."""
        assert compile_wildcard(pattern)(candidate) is expected

    def test_match_is_anchored(self):
        matcher = compile_wildcard("tour*")

        assert not matcher("my-tour")

    def test_regex_source(self):
        assert wildcard_to_regex("a*b") == r"\Aa.*b\Z"
