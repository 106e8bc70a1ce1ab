"""Prometheus metrics for the sync engine."""
from prometheus_client import Counter, Gauge, Histogram, start_http_server

# Progress metrics
responses_recorded = Counter(
    "vocabsync_responses_recorded_total",
    "Total number of study responses persisted",
    ["outcome"],
)

sessions_started = Counter(
    "vocabsync_sessions_started_total",
    "Total number of study sessions started",
)

sessions_completed = Counter(
    "vocabsync_sessions_completed_total",
    "Total number of study sessions completed",
)

# Sync queue metrics
sync_operations_enqueued = Counter(
    "vocabsync_sync_operations_enqueued_total",
    "Total number of sync operations appended to the queue",
    ["kind"],
)

sync_operations_processed = Counter(
    "vocabsync_sync_operations_processed_total",
    "Total number of sync operations delivered to the remote API",
    ["kind"],
)

sync_operations_failed = Counter(
    "vocabsync_sync_operations_failed_total",
    "Total number of failed sync attempts",
    ["kind"],
)

sync_pending_operations = Gauge(
    "vocabsync_sync_pending_operations",
    "Number of sync operations awaiting delivery",
)

sync_exhausted_operations = Gauge(
    "vocabsync_sync_exhausted_operations",
    "Number of sync operations that reached the retry ceiling",
)

drain_duration = Histogram(
    "vocabsync_drain_duration_seconds",
    "Duration of sync queue drains in seconds",
    buckets=[0.1, 0.5, 1.0, 5.0, 30.0],
)

# Storage metrics
storage_errors = Counter(
    "vocabsync_storage_errors_total",
    "Total number of local storage failures",
    ["operation"],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
