"""Prometheus metrics for the ingestion and answering pipeline."""

from prometheus_client import Counter, Histogram

# Upstream provider metrics
upstream_latency_ms = Histogram(
    "upstream_latency_ms",
    "Upstream provider call latency in milliseconds",
    ["operation", "outcome"],
    buckets=[10, 50, 100, 200, 500, 1000, 2000, 4000, 8000, 16000],
)

upstream_errors_total = Counter(
    "upstream_errors_total",
    "Total upstream provider call errors",
    ["operation", "reason"],
)

# Question cache metrics
question_cache_total = Counter(
    "question_cache_total",
    "Question cache lookups by layer and outcome",
    ["layer", "outcome"],
)

# Ingestion metrics
documents_ingested_total = Counter(
    "documents_ingested_total",
    "Documents that reached a terminal ingestion state",
    ["status"],
)


class PrometheusUpstreamMetrics:
    """Prometheus-based upstream call metrics."""

    def record_latency(self, operation: str, outcome: str, latency_ms: float) -> None:
        """Record upstream call latency."""
        upstream_latency_ms.labels(operation=operation, outcome=outcome).observe(latency_ms)

    def inc_error(self, operation: str, reason: str) -> None:
        """Increment error counter."""
        upstream_errors_total.labels(operation=operation, reason=reason).inc()
