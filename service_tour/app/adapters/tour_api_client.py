"""
Client for the Korea Tourism Organization tour data API (KorService2).
"""

from typing import Any, Dict, List, Optional

import httpx

from shared.errors import ExternalServiceError, NotFoundError, RateLimitError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, retry_on_exception
from ..schemas import NearbyParams, SearchParams


SERVICE_NAME = "tour_api"
SUCCESS_RESULT_CODE = "0000"

COMMON_PARAMS = {
    "MobileOS": "ETC",
    "MobileApp": "TourismExplorer",
    "_type": "json",
}


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def transform_location(item: Dict[str, Any]) -> Dict[str, Any]:
    """Map a raw API item onto the location shape served to clients."""
    return {
        "contentId": str(item.get("contentid", "")),
        "contentTypeId": _to_int(item.get("contenttypeid")),
        "title": item.get("title"),
        "address": item.get("addr1") or "",
        "addr1": item.get("addr1"),
        "addr2": item.get("addr2"),
        "mapX": _to_float(item.get("mapx")) or None,
        "mapY": _to_float(item.get("mapy")) or None,
        "thumbnailUrl": item.get("firstimage") or item.get("firstimage2"),
        "firstImage": item.get("firstimage"),
        "firstImage2": item.get("firstimage2"),
        "areaCode": _to_int(item.get("areacode")) or None,
        "sigunguCode": _to_int(item.get("sigungucode")) or None,
        "cat1": item.get("cat1"),
        "cat2": item.get("cat2"),
        "cat3": item.get("cat3"),
        "tel": item.get("tel"),
        "overview": item.get("overview"),
        "createdtime": item.get("createdtime"),
        "modifiedtime": item.get("modifiedtime"),
    }


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, ExternalServiceError):
        return exc.details.get("status_code", 0) >= 500
    return False


class TourApiClient:
    """Async client for the tour data API with retry on transport errors and 5xx."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        retry_config: Optional[RetryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.logger = get_logger("tour.api_client")
        self.metrics = metrics
        self.retry_config = retry_config or RetryConfig(
            max_attempts=3,
            base_delay=1.0,
            backoff_strategy="linear",
            jitter=False,
        )
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    async def search(self, params: SearchParams) -> Dict[str, Any]:
        """Keyword search with optional region and category filters."""
        query: Dict[str, Any] = {
            "numOfRows": params.num_of_rows,
            "pageNo": params.page_no,
        }
        query.update(self._filters(
            arrange=params.arrange,
            keyword=params.keyword,
            areaCode=params.area_code,
            sigunguCode=params.sigungu_code,
            contentTypeId=params.content_type_id,
            cat1=params.cat1,
            cat2=params.cat2,
            cat3=params.cat3,
        ))
        body = await self._get("/searchKeyword2", query, operation="search")
        return self._page(body, params.page_no, params.num_of_rows)

    async def get_nearby_locations(self, params: NearbyParams) -> Dict[str, Any]:
        """Locations within ``radius`` metres of a coordinate."""
        query: Dict[str, Any] = {
            "numOfRows": params.num_of_rows,
            "pageNo": params.page_no,
            "arrange": params.arrange,
            "mapX": params.map_x,
            "mapY": params.map_y,
            "radius": min(params.radius, 20000),
        }
        query.update(self._filters(
            contentTypeId=params.content_type_id,
            areaCode=params.area_code,
            sigunguCode=params.sigungu_code,
            cat1=params.cat1,
            cat2=params.cat2,
            cat3=params.cat3,
        ))
        body = await self._get("/locationBasedList2", query, operation="nearby")
        return self._page(body, params.page_no, params.num_of_rows)

    async def get_detail(self, content_id: str) -> Dict[str, Any]:
        """Common detail for one location; raises NotFoundError when absent."""
        body = await self._get("/detailCommon2", {"contentId": content_id}, operation="detail")
        items = self._items(body)
        if not items:
            raise NotFoundError("Location", details={"content_id": content_id})
        return transform_location(items[0])

    async def get_images(self, content_id: str) -> List[str]:
        """Original image URLs for a location."""
        body = await self._get(
            "/detailImage2",
            {"contentId": content_id, "imageYN": "Y"},
            operation="images",
        )
        return [item["originimgurl"] for item in self._items(body) if item.get("originimgurl")]

    async def get_area_codes(self) -> List[Dict[str, Any]]:
        """Top-level region codes."""
        body = await self._get("/areaCode2", {"numOfRows": 20, "pageNo": 1}, operation="areas")
        return [
            {"code": _to_int(item.get("code")), "name": item.get("name")}
            for item in self._items(body)
        ]

    @staticmethod
    def _filters(**values: Any) -> Dict[str, Any]:
        return {name: value for name, value in values.items() if value not in (None, "")}

    @staticmethod
    def _items(body: Dict[str, Any]) -> List[Dict[str, Any]]:
        # The API sends "" for an empty list and a bare object for a single item.
        items = body.get("items") or {}
        item = items.get("item") if isinstance(items, dict) else None
        if not item:
            return []
        return item if isinstance(item, list) else [item]

    def _page(self, body: Dict[str, Any], page_no: int, num_of_rows: int) -> Dict[str, Any]:
        return {
            "items": [transform_location(item) for item in self._items(body)],
            "totalCount": _to_int(body.get("totalCount")) or 0,
            "pageNo": _to_int(body.get("pageNo")) or page_no,
            "numOfRows": _to_int(body.get("numOfRows")) or num_of_rows,
        }

    def _record(self, operation: str, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter("upstream_requests_total", operation=operation, outcome=outcome)

    async def _get(self, path: str, params: Dict[str, Any], *, operation: str) -> Dict[str, Any]:
        """GET ``path`` and return ``response.body`` of the API envelope."""
        query = {"serviceKey": self.api_key, **COMMON_PARAMS, **params}

        @retry_on_exception(
            (httpx.TransportError, ExternalServiceError),
            config=self.retry_config,
            should_retry=_is_retryable,
            name=f"tour_api.{operation}",
        )
        async def _request() -> Dict[str, Any]:
            response = await self._client.get(path, params=query)
            self.logger.debug("Tour API response", path=path, status_code=response.status_code)

            if response.status_code == 404:
                raise NotFoundError("Resource", details={"path": path})
            if response.status_code == 429:
                raise RateLimitError(details={"path": path})
            if response.status_code != 200:
                raise ExternalServiceError(
                    service=SERVICE_NAME,
                    message=f"Request failed with status code {response.status_code}",
                    details={"status_code": response.status_code, "path": path},
                )

            try:
                payload = response.json()
            except ValueError:
                raise ExternalServiceError(SERVICE_NAME, "Failed to parse response", {"path": path})

            envelope = payload.get("response") if isinstance(payload, dict) else None
            if not isinstance(envelope, dict):
                raise ExternalServiceError(SERVICE_NAME, "Unexpected response shape", {"path": path})

            header = envelope.get("header") or {}
            if header.get("resultCode") != SUCCESS_RESULT_CODE:
                raise ExternalServiceError(
                    SERVICE_NAME,
                    header.get("resultMsg") or "API error",
                    {"result_code": header.get("resultCode"), "path": path},
                )
            return envelope.get("body") or {}

        try:
            body = await _request()
        except httpx.TransportError as exc:
            self._record(operation, "network_error")
            self.logger.error("Tour API network error", path=path, error=str(exc))
            raise ExternalServiceError(SERVICE_NAME, "Network timeout or connection error", {"path": path})
        except Exception:
            self._record(operation, "error")
            raise

        self._record(operation, "ok")
        return body
