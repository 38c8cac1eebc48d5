"""
Unit tests for shared configuration, errors and logging.
"""

import pytest

from shared.config import DEFAULT_TOUR_API_BASE_URL, get_config
from shared.errors import (
    ExternalServiceError,
    NotFoundError,
    RateLimitError,
    TourExplorerException,
    ValidationError,
)
from shared.logging import (
    add_correlation_context,
    add_service_context,
    add_timestamp,
    clear_context,
    set_request_id,
)


class TestConfig:
    """Test cases for ServiceConfig."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("TOUR_API_KEY", raising=False)

        config = get_config("tour", 8000)

        assert config.api_key == ""
        assert config.api_base_url == DEFAULT_TOUR_API_BASE_URL
        assert config.cache_max_size == 500
        assert config.cache_default_ttl_seconds is None
        assert config.search_cache_ttl_seconds == 300

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("TOUR_API_KEY", "from-env")
        monkeypatch.setenv("TOUR_CACHE_MAX_SIZE", "25")
        monkeypatch.setenv("TOUR_CACHE_ENABLE_STATS_LOGGING", "true")

        config = get_config("tour", 8000)

        assert config.api_key == "from-env"
        assert config.cache_max_size == 25
        assert config.cache_enable_stats_logging is True

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("TOUR_API_KEY", "from-env")

        assert get_config("tour", 8000, api_key="explicit").api_key == "explicit"


class TestErrors:
    """Test cases for the error taxonomy."""

    @pytest.mark.parametrize("error,status_code,code", [
        (ValidationError("bad"), 400, "VALIDATION_ERROR"),
        (NotFoundError("Location"), 404, "NOT_FOUND"),
        (RateLimitError(), 429, "RATE_LIMIT_ERROR"),
        (ExternalServiceError("tour_api", "down"), 502, "EXTERNAL_SERVICE_ERROR"),
    ])
    def test_status_codes(self, error, status_code, code):
        assert error.status_code == status_code
        assert error.code == code

    def test_to_response(self):
        response = NotFoundError("Location", details={"content_id": "1"}).to_response()

        assert response.success is False
        assert response.error == "Location not found"
        assert response.details == {"content_id": "1"}
        assert response.timestamp.endswith("Z")

    def test_status_code_override(self):
        error = TourExplorerException("TEAPOT", "short and stout", status_code=418)

        assert error.status_code == 418
        assert TourExplorerException.status_code == 500

    def test_external_service_message(self):
        assert str(ExternalServiceError("tour_api", "down")) == "tour_api: down"


class TestLoggingProcessors:
    """Test cases for the structlog processors."""

    def test_service_from_logger_name(self):
        event = add_service_context(None, "info", {"logger": "tour.cache_manager"})

        assert event["service"] == "tour"

    def test_request_id_attached(self):
        set_request_id("req-42")
        try:
            event = add_correlation_context(None, "info", {})
        finally:
            clear_context()

        assert event["request_id"] == "req-42"
        assert "request_id" not in add_correlation_context(None, "info", {})

    def test_epoch_keeps_iso_timestamp(self):
        event = add_timestamp(None, "info", {"timestamp": "2026-01-01T00:00:00Z"})

        assert event["timestamp"] == "2026-01-01T00:00:00Z"
        assert isinstance(event["epoch"], float)
