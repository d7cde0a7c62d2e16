"""Monitoring configuration for the sync agent."""
from prometheus_client import Counter, Gauge, Histogram, start_http_server

# Queue metrics
records_queued = Counter(
    "vocasync_records_queued_total",
    "Total number of records appended to a local sync queue",
    ["queue"],
)

records_synced = Counter(
    "vocasync_records_synced_total",
    "Total number of queued records acknowledged by the server",
    ["queue"],
)

pending_records = Gauge(
    "vocasync_pending_records",
    "Number of records waiting to be synced",
    ["queue"],
)

submission_failures = Counter(
    "vocasync_submission_failures_total",
    "Total number of failed record submissions",
    ["queue", "error_type"],
)

# API metrics
request_duration = Histogram(
    "vocasync_request_duration_seconds",
    "Duration of remote API requests in seconds",
    ["endpoint"],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 15.0],
)

api_errors = Counter(
    "vocasync_api_errors_total",
    "Total number of remote API errors",
    ["endpoint", "error_type"],
)

# Cache and fallback metrics
words_cache_hits = Counter(
    "vocasync_words_cache_hits_total",
    "Number of word catalog requests served from the local cache",
)

words_cache_misses = Counter(
    "vocasync_words_cache_misses_total",
    "Number of word catalog requests that went to the server",
)

fallback_quizzes = Counter(
    "vocasync_fallback_quizzes_total",
    "Number of quizzes generated locally because the quiz endpoint failed",
)

# Storage metrics
storage_errors = Counter(
    "vocasync_storage_errors_total",
    "Total number of local storage errors",
    ["operation"],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
