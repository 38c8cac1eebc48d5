"""
Response caching for route handlers.

``with_cache`` wraps a handler so that JSON responses are stored in a
``CacheManager`` under the request's canonical key and replayed on later
requests. Every response leaving the wrapper carries an ``X-Cache`` header:

- ``HIT``: replayed from the cache, the handler was not called
- ``MISS``: produced by the handler and stored
- ``BYPASS``: produced by the handler but not cacheable (non-JSON body,
  unparsable body, unbuffered stream, or a status the route excludes)
"""

import functools
import inspect
import json
from typing import Any, Awaitable, Callable, Container, Dict, List, Optional, Tuple

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .cache_manager import CacheManager
from .keys import generate_cache_key


CACHE_HEADER = "X-Cache"
CACHE_HIT = "HIT"
CACHE_MISS = "MISS"
CACHE_BYPASS = "BYPASS"

JSON_CONTENT_TYPE = "application/json"

# Recomputed when a stored body is re-serialized.
_UNSTORED_HEADERS = frozenset({"content-length", CACHE_HEADER.lower()})

logger = get_logger("tour.cache_middleware")

Handler = Callable[..., Any]


def build_cached_response(
    body: Any,
    status: int = 200,
    headers: Optional[List[Tuple[str, str]]] = None,
) -> Dict[str, Any]:
    """Shape of a stored response: parsed JSON body, status and header pairs."""
    if headers is None:
        headers = [("content-type", JSON_CONTENT_TYPE)]
    return {
        "body": body,
        "status": status,
        "headers": [[name, value] for name, value in headers],
    }


def _serialize_headers(response: Response) -> List[Tuple[str, str]]:
    return [
        (name, value)
        for name, value in response.headers.items()
        if name.lower() not in _UNSTORED_HEADERS
    ]


def _replay(cached: Dict[str, Any]) -> Response:
    response = JSONResponse(content=cached["body"], status_code=cached["status"])
    for name, value in cached["headers"]:
        if name.lower() in _UNSTORED_HEADERS:
            continue
        if name.lower() == "content-type":
            response.headers["content-type"] = value
        else:
            response.headers.append(name, value)
    response.headers[CACHE_HEADER] = CACHE_HIT
    return response


def _tag(response: Response, status: str) -> Response:
    response.headers[CACHE_HEADER] = status
    return response


def _is_json(response: Response) -> bool:
    content_type = response.headers.get("content-type") or ""
    return JSON_CONTENT_TYPE in content_type.lower()


async def _invoke(handler: Handler, request: Request, *args, **kwargs) -> Response:
    if inspect.iscoroutinefunction(handler):
        result = await handler(request, *args, **kwargs)
    else:
        result = await run_in_threadpool(handler, request, *args, **kwargs)
        if inspect.isawaitable(result):
            result = await result

    if isinstance(result, Response):
        return result
    return JSONResponse(content=jsonable_encoder(result))


def with_cache(
    cache_manager: CacheManager,
    ttl_seconds: Optional[float] = None,
    *,
    metrics: Optional[MetricsCollector] = None,
    cacheable_statuses: Optional[Container[int]] = None,
) -> Callable[[Handler], Callable[..., Awaitable[Response]]]:
    """
    Decorate a route handler with response caching.

    The handler's first parameter must be the ``Request``. By default any
    JSON response is cached whatever its status; pass ``cacheable_statuses``
    to restrict that.
    """

    def record(outcome: str) -> None:
        if metrics is not None:
            metrics.increment_counter("cache_requests_total", status=outcome)

    def decorator(handler: Handler) -> Callable[..., Awaitable[Response]]:
        @functools.wraps(handler)
        async def wrapper(request: Request, *args, **kwargs) -> Response:
            cache_key = generate_cache_key(request)

            cached = cache_manager.get(cache_key)
            if cached is not None:
                record(CACHE_HIT)
                return _replay(cached)

            response = await _invoke(handler, request, *args, **kwargs)

            if not _is_json(response):
                logger.debug("Cache bypass: non-JSON response", key=cache_key)
                record(CACHE_BYPASS)
                return _tag(response, CACHE_BYPASS)

            if cacheable_statuses is not None and response.status_code not in cacheable_statuses:
                logger.debug("Cache bypass: status not cacheable", key=cache_key, status_code=response.status_code)
                record(CACHE_BYPASS)
                return _tag(response, CACHE_BYPASS)

            # Parse a copy of the buffered body; the response itself is returned untouched.
            try:
                payload = json.loads(bytes(response.body))
            except (AttributeError, TypeError, ValueError) as exc:
                logger.debug("Cache bypass: body is not parseable JSON", key=cache_key, error=str(exc))
                record(CACHE_BYPASS)
                return _tag(response, CACHE_BYPASS)

            cache_manager.set(
                cache_key,
                build_cached_response(payload, response.status_code, _serialize_headers(response)),
                ttl_seconds,
            )
            record(CACHE_MISS)
            if metrics is not None:
                metrics.set_gauge("cache_entries", cache_manager.size())
            return _tag(response, CACHE_MISS)

        return wrapper

    return decorator
