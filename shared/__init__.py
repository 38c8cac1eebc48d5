"""
Shared utilities for the Tour Explorer access layer.

This package aggregates common building blocks consumed by the services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry decorator for flaky upstream calls
- base_service: FastAPI app factory with health and metrics routes

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service_* packages into shared/.
"""
