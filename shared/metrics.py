"""
Shared metrics configuration for the identity core.
"""

from prometheus_client import Counter, Histogram, Info, CollectorRegistry, REGISTRY
from typing import Dict, Any, Optional
import threading


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else REGISTRY
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common and identity-specific metrics."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        # Identity tokens
        self._metrics["token_verifications_total"] = Counter(
            "token_verifications_total",
            "Total identity token verifications",
            ["outcome"],
            registry=self.registry
        )

        self._metrics["signing_key_refresh_total"] = Counter(
            "signing_key_refresh_total",
            "Total signing key listing refreshes",
            ["status"],
            registry=self.registry
        )

        # Service account / store
        self._metrics["access_token_exchanges_total"] = Counter(
            "access_token_exchanges_total",
            "Total OAuth2 access token exchanges",
            ["status"],
            registry=self.registry
        )

        self._metrics["store_requests_total"] = Counter(
            "store_requests_total",
            "Total document store requests",
            ["operation", "status"],
            registry=self.registry
        )

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).inc()


_default_collector: Optional[MetricsCollector] = None
_default_lock = threading.Lock()


def get_metrics_collector(service_name: str = "identity", registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service.

    The default registry holds a single shared collector, since Prometheus
    refuses duplicate metric registrations.
    """
    global _default_collector

    if registry is not None:
        return MetricsCollector(service_name, registry)

    with _default_lock:
        if _default_collector is None:
            _default_collector = MetricsCollector(service_name)
        return _default_collector
