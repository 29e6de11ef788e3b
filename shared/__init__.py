"""
Shared utilities for the office policy engine.

This package aggregates common building blocks consumed by the services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- circuit_breaker: Resilient external call protection
- base_service: FastAPI service skeleton with health and metrics routes
- test_helpers: Fixtures and factories for service tests

Apart from test_helpers, do not import from service packages into shared/.
"""
