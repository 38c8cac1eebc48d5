"""
Tour service for the Tour Explorer access layer.

Proxies the tour data API behind an in-memory response cache. The cache is
constructed here, once per service instance, and reaches handlers through
``app.state`` and the ``get_cache_manager`` dependency.
"""

import functools
from typing import Any, Dict, List, Optional, Type, TypeVar

from fastapi import Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError as PydanticValidationError

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import ValidationError, utc_timestamp
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig
from .adapters.tour_api_client import TourApiClient
from .caching import CacheManager, WarmCacheTask, build_cached_response, format_cache_key, with_cache
from .schemas import InvalidateRequest, NearbyParams, SearchParams, WarmRequest


ModelT = TypeVar("ModelT", bound=BaseModel)

SUCCESS_STATUSES = range(200, 300)
RELATED_LIMIT = 6
DETAIL_ROUTE = "tour_detail"

API_ENDPOINTS = [
    "/api/tour/search",
    "/api/tour/nearby",
    "/api/tour/detail/{content_id}",
    "/api/tour/areas",
]


def success_response(data: Any, status_code: int = 200) -> JSONResponse:
    """Standard success envelope."""
    return JSONResponse(
        status_code=status_code,
        content={"success": True, "data": data, "timestamp": utc_timestamp()},
    )


def detail_cache_key(request: Request, content_id: str) -> str:
    """Key a plain ``GET`` of the detail route for ``content_id`` is cached under."""
    return format_cache_key("GET", request.url_for(DETAIL_ROUTE, content_id=content_id).path)


def get_cache_manager(request: Request) -> CacheManager:
    """FastAPI dependency resolving the service's cache."""
    return request.app.state.cache_manager


def parse_query(model: Type[ModelT], request: Request) -> ModelT:
    """Validate query parameters into ``model``; blank values count as absent."""
    raw = {
        name: value.strip()
        for name, value in request.query_params.items()
        if value.strip()
    }
    try:
        return model.model_validate(raw)
    except PydanticValidationError as exc:
        problems = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        ]
        raise ValidationError("; ".join(problems), details={"errors": problems})


class TourService(BaseService):
    """Tour data proxy with response caching."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        cache_manager: Optional[CacheManager] = None,
        tour_client: Optional[TourApiClient] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        super().__init__("tour", 8000, config=config, metrics=metrics)

        self.cache_manager = cache_manager if cache_manager is not None else CacheManager(
            default_ttl_seconds=self.config.cache_default_ttl_seconds,
            max_size=self.config.cache_max_size,
            enable_stats_logging=self.config.cache_enable_stats_logging,
            logger=get_logger("tour.cache_manager"),
        )
        self.tour_client = tour_client if tour_client is not None else TourApiClient(
            self.config.api_base_url,
            self.config.api_key,
            timeout=self.config.api_timeout_seconds,
            retry_config=RetryConfig(
                max_attempts=self.config.api_max_retries,
                base_delay=self.config.api_retry_delay_seconds,
                backoff_strategy="linear",
                jitter=False,
            ),
            metrics=self.metrics,
        )

        if not self.config.api_key:
            self.logger.warning("TOUR_API_KEY is not set; upstream requests will be rejected")

        self.app.state.cache_manager = self.cache_manager
        self.app.state.tour_service = self

        self._setup_tour_routes()
        self._setup_cache_routes()

    async def on_shutdown(self) -> None:
        stats = self.cache_manager.get_stats()
        self.logger.info("Shutting down tour service", cache_size=stats.size, hit_rate=stats.hit_rate)
        self.cache_manager.clear()
        await self.tour_client.close()

    async def _check_dependencies(self) -> Dict[str, str]:
        return {
            "cache": "ok",
            "tour_api": "configured" if self.config.api_key else "missing_key",
        }

    async def load_detail(self, content_id: str, include_related: bool = False) -> Dict[str, Any]:
        """Detail plus images; related items by ``cat3`` on request."""
        detail = await self.tour_client.get_detail(content_id)

        try:
            images: List[str] = await self.tour_client.get_images(content_id)
        except Exception as exc:
            self.logger.warning("Image lookup failed", content_id=content_id, error=str(exc))
            images = []

        result: Dict[str, Any] = {**detail, "images": images}

        if include_related and detail.get("cat3"):
            try:
                related = await self.tour_client.search(
                    SearchParams(cat3=detail["cat3"], pageNo=1, numOfRows=RELATED_LIMIT)
                )
                items = related["items"]
            except Exception as exc:
                self.logger.warning("Related lookup failed", content_id=content_id, error=str(exc))
                items = []
            result["related"] = [
                item for item in items if item.get("contentId") != content_id
            ][:RELATED_LIMIT]

        return result

    def _detail_fetcher(self, content_id: str):
        async def fetch() -> Dict[str, Any]:
            data = await self.load_detail(content_id)
            return build_cached_response(
                {"success": True, "data": data, "timestamp": utc_timestamp()},
                200,
                [
                    ("content-type", "application/json"),
                    ("cache-control", self._cache_control(self.config.detail_cache_ttl_seconds)),
                ],
            )

        return fetch

    @staticmethod
    def _cache_control(ttl_seconds: float) -> str:
        return f"public, s-maxage={int(ttl_seconds)}"

    def _setup_tour_routes(self):
        """Set up cached tour data routes."""
        cached = functools.partial(
            with_cache,
            self.cache_manager,
            metrics=self.metrics,
            cacheable_statuses=SUCCESS_STATUSES,
        )

        @self.app.get("/")
        async def root():
            return {
                "service": "tour",
                "message": "Tour Explorer - Tour Service",
                "version": "1.0.0",
            }

        @self.app.get("/api/tour")
        async def api_info():
            return {
                "message": "Tourism Explorer API",
                "version": "1.0.0",
                "endpoints": API_ENDPOINTS,
            }

        @self.app.get("/api/tour/search")
        @cached(self.config.search_cache_ttl_seconds)
        async def search(request: Request):
            """Keyword search."""
            params = parse_query(SearchParams, request)
            if params.keyword:
                self.logger.info("Keyword search", keyword=params.keyword)

            result = await self.tour_client.search(params)
            response = success_response(result)
            response.headers["Cache-Control"] = self._cache_control(self.config.search_cache_ttl_seconds)
            response.headers["X-Total-Count"] = str(result["totalCount"])
            return response

        @self.app.get("/api/tour/nearby")
        @cached(self.config.nearby_cache_ttl_seconds)
        async def nearby(request: Request):
            """Locations around a coordinate."""
            params = parse_query(NearbyParams, request)
            result = await self.tour_client.get_nearby_locations(params)
            response = success_response(result)
            response.headers["Cache-Control"] = self._cache_control(self.config.nearby_cache_ttl_seconds)
            response.headers["X-Total-Count"] = str(result["totalCount"])
            return response

        @self.app.get("/api/tour/detail/{content_id}", name=DETAIL_ROUTE)
        @cached(self.config.detail_cache_ttl_seconds)
        async def detail(request: Request, content_id: str):
            """Location detail with images."""
            include_related = request.query_params.get("includeRelated") == "true"
            data = await self.load_detail(content_id, include_related=include_related)
            response = success_response(data)
            response.headers["Cache-Control"] = self._cache_control(self.config.detail_cache_ttl_seconds)
            return response

        @self.app.get("/api/tour/areas")
        @cached(self.config.detail_cache_ttl_seconds)
        async def areas(request: Request):
            """Region codes."""
            return success_response(await self.tour_client.get_area_codes())

    def _setup_cache_routes(self):
        """Set up cache administration routes."""

        @self.app.get("/api/v1/cache/stats")
        async def cache_stats(cache: CacheManager = Depends(get_cache_manager)):
            stats = cache.get_stats()
            self.metrics.set_gauge("cache_entries", stats.size)
            return stats.model_dump()

        @self.app.post("/api/v1/cache/invalidate")
        async def cache_invalidate(body: InvalidateRequest, cache: CacheManager = Depends(get_cache_manager)):
            removed = cache.invalidate(body.pattern)
            self.logger.info("Cache invalidation requested", pattern=body.pattern, removed=removed)
            return {"pattern": body.pattern, "removed": removed}

        @self.app.post("/api/v1/cache/clear")
        async def cache_clear(cache: CacheManager = Depends(get_cache_manager)):
            cache.clear()
            return {"cleared": True}

        @self.app.post("/api/v1/cache/warm")
        async def cache_warm(
            request: Request,
            body: WarmRequest,
            cache: CacheManager = Depends(get_cache_manager),
        ):
            ttl = body.ttl_seconds if body.ttl_seconds is not None else self.config.detail_cache_ttl_seconds
            tasks = [
                WarmCacheTask(
                    key=detail_cache_key(request, content_id),
                    fetcher=self._detail_fetcher(content_id),
                    ttl_seconds=ttl,
                )
                for content_id in body.content_ids
            ]
            result = await cache.warm_cache(tasks)
            return result.to_dict()


def create_app(config: Optional[ServiceConfig] = None, **kwargs):
    """Create FastAPI application."""
    service = TourService(config, **kwargs)
    return service.app


if __name__ == "__main__":
    service = TourService()
    service.run()
