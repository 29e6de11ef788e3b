"""
Prometheus metrics for the office policy engine.
"""

import time
from contextlib import contextmanager
from typing import Iterator, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, Info


class MetricsCollector:
    """HTTP metrics shared by every service plus policy decision counters."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        # Each collector owns its registry
        self.registry = registry if registry is not None else CollectorRegistry()

        self.service_info = Info("service_info", "Service information", registry=self.registry)
        self.service_info.info({"service": service_name, "version": "1.0.0"})

        # HTTP
        self.http_requests = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )
        self.http_request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )
        self.health_checks = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )
        self.errors = Counter(
            "errors_total",
            "Errors by code",
            ["error_type", "service"],
            registry=self.registry
        )

        # Administrative actions
        self.authorization_decisions = Counter(
            "authorization_decisions_total",
            "Administrative action decisions",
            ["transition", "outcome"],
            registry=self.registry
        )

        # Entitlements
        self.entitlement_checks = Counter(
            "entitlement_checks_total",
            "Total entitlement checks",
            ["decision"],
            registry=self.registry
        )
        self.entitlement_check_duration = Histogram(
            "entitlement_check_duration_seconds",
            "Entitlement check duration in seconds",
            registry=self.registry
        )
        self.grant_activations = Counter(
            "grant_activations_total",
            "Feature group activation attempts",
            ["outcome"],
            registry=self.registry
        )
        self.grants_expired = Counter(
            "grants_expired_total",
            "Grants deactivated by the expiration sweep",
            registry=self.registry
        )
        self.token_verifications = Counter(
            "token_verifications_total",
            "External token verifications",
            ["status"],
            registry=self.registry
        )

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        self.http_requests.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
        self.http_request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def record_health_check(self, status: str):
        self.health_checks.labels(status=status).inc()

    def record_error(self, error_type: str):
        self.errors.labels(error_type=error_type, service=self.service_name).inc()

    def record_authorization(self, transition: str, outcome: str):
        """Count a decision; outcome is "allow" or the denial kind."""
        self.authorization_decisions.labels(transition=transition, outcome=outcome).inc()

    @contextmanager
    def entitlement_check(self) -> Iterator[None]:
        """Time one entitlement check."""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            self.entitlement_check_duration.observe(time.perf_counter() - start_time)

    def record_entitlement_check(self, allowed: bool):
        self.entitlement_checks.labels(decision="allow" if allowed else "deny").inc()

    def record_grant_activation(self, outcome: str):
        self.grant_activations.labels(outcome=outcome).inc()

    def record_grants_expired(self, count: int):
        self.grants_expired.inc(count)

    def record_token_verification(self, valid: bool):
        self.token_verifications.labels(status="valid" if valid else "invalid").inc()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
