"""Prometheus metrics for the article store."""

from prometheus_client import Counter, Histogram

article_operations_total = Counter(
    "article_operations_total",
    "Total article repository operations",
    ["operation", "outcome"],
)

article_operation_latency_ms = Histogram(
    "article_operation_latency_ms",
    "Article repository operation latency in milliseconds",
    ["operation"],
    buckets=[1, 5, 10, 25, 50, 100, 250, 500, 1000, 2500],
)

article_cache_lookups_total = Counter(
    "article_cache_lookups_total",
    "Article cache lookups",
    ["kind", "outcome"],
)

article_lock_wait_ms = Histogram(
    "article_lock_wait_ms",
    "Time spent waiting for a slug lock in milliseconds",
    buckets=[0.1, 1, 5, 10, 50, 100, 500, 1000, 5000],
)

sync_jobs_total = Counter(
    "sync_jobs_total",
    "Background sync jobs by type and outcome",
    ["job_type", "outcome"],
)


class PrometheusArticleMetrics:
    """Prometheus-based article store metrics implementation."""

    def record_operation(self, operation: str, outcome: str, latency_ms: float) -> None:
        """Record one repository operation."""
        article_operations_total.labels(operation=operation, outcome=outcome).inc()
        article_operation_latency_ms.labels(operation=operation).observe(latency_ms)

    def record_cache_lookup(self, kind: str, outcome: str) -> None:
        """Record a cache lookup (hit, miss or error)."""
        article_cache_lookups_total.labels(kind=kind, outcome=outcome).inc()

    def record_lock_wait(self, wait_ms: float) -> None:
        """Record time spent waiting for a slug lock."""
        article_lock_wait_ms.observe(wait_ms)

    def record_sync_job(self, job_type: str, outcome: str) -> None:
        """Record a finished background sync job."""
        sync_jobs_total.labels(job_type=job_type, outcome=outcome).inc()


metrics = PrometheusArticleMetrics()
