"""
Canonical cache keys for inbound requests.
"""

from typing import Any, Iterable, List, Tuple
from urllib.parse import urlencode


DEFAULT_METHOD = "GET"


def _query_items(request: Any) -> Iterable[Tuple[str, str]]:
    query_params = getattr(request, "query_params", None)
    if query_params is None:
        return []
    if hasattr(query_params, "multi_items"):
        return query_params.multi_items()
    return list(query_params.items())


def format_cache_key(method: str, path: str, params: Iterable[Tuple[Any, Any]] = ()) -> str:
    """
    Build ``"{METHOD}:{path}{?query}"``.

    Query pairs are sorted by name, then value, so parameters given in a
    different order share one key. Repeated names are kept.
    """
    pairs: List[Tuple[str, str]] = sorted((str(k), str(v)) for k, v in params)
    query = f"?{urlencode(pairs)}" if pairs else ""
    return f"{(method or DEFAULT_METHOD).upper()}:{path}{query}"


def generate_cache_key(request: Any) -> str:
    """Key for a request: its method, URL path and sorted query."""
    return format_cache_key(
        getattr(request, "method", None) or DEFAULT_METHOD,
        request.url.path,
        _query_items(request),
    )
