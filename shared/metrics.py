"""
Shared metrics configuration for the asset registry access layer.
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info, generate_latest
from typing import Dict, Any, Optional


class MetricsCollector:
    """Centralized Prometheus metrics collector for a service instance."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        # A private registry per instance so several apps can live in one process
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

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

        self._setup_registry_metrics()

    def _setup_registry_metrics(self):
        """Set up metrics fed by the registry handler event stream."""
        self._metrics["registry_handler_events_total"] = Counter(
            "registry_handler_events_total",
            "Total events emitted by delegated registry handlers",
            ["source", "kind", "outcome"],
            registry=self.registry
        )

        self._metrics["registry_handler_duration_seconds"] = Histogram(
            "registry_handler_duration_seconds",
            "Delegated registry handler duration in seconds",
            ["source"],
            registry=self.registry
        )

        self._metrics["registry_metrics_sources"] = Gauge(
            "registry_metrics_sources",
            "Number of metrics sources attached to the multiplexer",
            registry=self.registry
        )

    def render(self) -> bytes:
        """Render the registry in Prometheus text exposition format."""
        return generate_latest(self.registry)

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

    def record_registry_event(self, event) -> None:
        """Record one MetricsEvent relayed from a registry handler."""
        self._metrics["registry_handler_events_total"].labels(
            source=event.source,
            kind=event.kind or "none",
            outcome=event.outcome
        ).inc()
        self._metrics["registry_handler_duration_seconds"].labels(
            source=event.source
        ).observe(event.duration_ms / 1000.0)

    def set_metrics_sources(self, count: int):
        """Publish the number of attached metrics sources."""
        self._metrics["registry_metrics_sources"].set(count)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
