"""Metrics collection for the retrieval service.

Provides a thin convenience wrapper around ``prometheus_client`` so the
service consistently records HTTP, search, scorer and ingestion metrics.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- A single registry is kept per collector (can be injected for testing)
"""

from typing import Optional

from prometheus_client import Counter, Histogram, CollectorRegistry, generate_latest


class MetricsCollector:
    """Centralized metrics collection for the retrieval service.

    Parameters
    - service_name: Logical name used for scoping/labels if desired
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

        self.search_requests = Counter(
            'retrieval_search_requests_total',
            'Total hybrid search requests partitioned by outcome',
            ['outcome'],
            registry=self.registry
        )

        self.search_duration = Histogram(
            'retrieval_search_duration_seconds',
            'Hybrid search duration',
            ['outcome'],
            registry=self.registry
        )

        self.scorer_duration = Histogram(
            'retrieval_scorer_duration_seconds',
            'Scorer call duration',
            ['source'],
            registry=self.registry
        )

        self.scorer_failures = Counter(
            'retrieval_scorer_failures_total',
            'Scorer failures partitioned by source and error code',
            ['source', 'code'],
            registry=self.registry
        )

        self.document_operations = Counter(
            'retrieval_document_operations_total',
            'Documents written to or removed from the index',
            ['operation'],
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

    def record_search(self, outcome: str, duration: float) -> None:
        """Record search metrics. ``outcome`` is ``ok``, ``degraded`` or ``failed``."""
        self.search_requests.labels(outcome=outcome).inc()
        self.search_duration.labels(outcome=outcome).observe(duration)

    def record_scorer_call(self, source: str, duration: float) -> None:
        self.scorer_duration.labels(source=source).observe(duration)

    def record_scorer_failure(self, source: str, code: str) -> None:
        self.scorer_failures.labels(source=source, code=code).inc()

    def record_document_operation(self, operation: str, count: int = 1) -> None:
        self.document_operations.labels(operation=operation).inc(count)

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector(service_name: str) -> MetricsCollector:
    """Get or create metrics collector for a service.

    Returns a process-wide singleton to avoid duplicate collectors/labels.
    """
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector(service_name)
    return _metrics_collector
