"""Metrics collection for the embedding service.

Provides a thin convenience wrapper around ``prometheus_client`` so the
service consistently records HTTP, embedding, and model lifecycle metrics.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- A single registry is kept per collector (can be injected for testing)
"""

from typing import Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest
import structlog

logger = structlog.get_logger("metrics")


class MetricsCollector:
    """Centralized metrics collection.

    Parameters
    - service_name: Logical name used for scoping
    - registry: Optional custom ``CollectorRegistry`` (e.g. for testing)
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        self.request_count = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['method', 'endpoint', 'status'],
            registry=self.registry
        )

        self.request_duration = Histogram(
            'http_request_duration_seconds',
            'HTTP request duration',
            ['method', 'endpoint'],
            registry=self.registry
        )

        self.embedding_requests = Counter(
            'ml_embedding_requests_total',
            'Total embedding generation requests',
            ['model_id', 'operation', 'status'],
            registry=self.registry
        )

        self.embedding_duration = Histogram(
            'ml_embedding_duration_seconds',
            'Embedding generation duration',
            ['model_id', 'operation'],
            registry=self.registry
        )

        self.embedded_texts = Counter(
            'ml_embedded_texts_total',
            'Total number of texts embedded',
            ['model_id'],
            registry=self.registry
        )

        self.model_loads = Counter(
            'ml_model_loads_total',
            'Model load attempts partitioned by outcome',
            ['model_id', 'status'],
            registry=self.registry
        )

        self.model_load_duration = Histogram(
            'ml_model_load_duration_seconds',
            'Model load duration',
            ['model_id'],
            buckets=(0.5, 1, 2.5, 5, 10, 30, 60, 120, 300),
            registry=self.registry
        )

        self.model_version = Gauge(
            'ml_model_version',
            'Version counter of the active model snapshot',
            registry=self.registry
        )

    def record_http_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration: float
    ) -> None:
        """Record HTTP request metrics.

        duration is expected in seconds to match Prometheus histogram units.
        """
        self.request_count.labels(method=method, endpoint=endpoint, status=status).inc()
        self.request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def record_embedding(
        self,
        model_id: str,
        operation: str,
        text_count: int,
        duration: float,
        status: str = "success"
    ) -> None:
        """Record embedding generation metrics."""
        self.embedding_requests.labels(model_id=model_id, operation=operation, status=status).inc()
        if status == "success":
            self.embedding_duration.labels(model_id=model_id, operation=operation).observe(duration)
            self.embedded_texts.labels(model_id=model_id).inc(text_count)

    def record_model_load(
        self,
        model_id: str,
        duration: float,
        status: str = "success",
        version: Optional[int] = None
    ) -> None:
        """Record a model load attempt and, on success, the new version."""
        self.model_loads.labels(model_id=model_id, status=status).inc()
        self.model_load_duration.labels(model_id=model_id).observe(duration)
        if version is not None:
            self.model_version.set(version)

    def get_metrics(self) -> str:
        """Return metrics in Prometheus text exposition format."""
        return generate_latest(self.registry).decode("utf-8")


_collectors: Dict[str, MetricsCollector] = {}


def get_metrics_collector(service_name: str) -> MetricsCollector:
    """Get or create the process-wide collector for a service."""
    if service_name not in _collectors:
        _collectors[service_name] = MetricsCollector(service_name)
        logger.debug("Metrics collector created", service_name=service_name)
    return _collectors[service_name]
