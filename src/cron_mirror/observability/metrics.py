"""Prometheus metrics for observability."""

from prometheus_client import Counter, Gauge, Histogram, start_http_server

mirror_cycles_counter = Counter(
    "cron_mirror_cycles_total",
    "Mirror cycles by result",
    ["result"],  # changed, unchanged, failed
)

mirrored_jobs_gauge = Gauge(
    "cron_mirror_jobs",
    "Number of executor jobs seen by the last successful mirror cycle",
)

requests_processed_counter = Counter(
    "cron_mirror_requests_processed_total",
    "Command requests driven to a terminal status by a drain loop",
    ["kind", "status"],
)

watchdog_failed_counter = Counter(
    "cron_mirror_watchdog_failed_total",
    "Requests force-failed by the stuck-request watchdog",
    ["kind"],
)

loop_failures_counter = Counter(
    "cron_mirror_loop_failures_total",
    "Loop cycles that raised",
    ["loop"],
)

executor_duration_histogram = Histogram(
    "cron_mirror_executor_duration_seconds",
    "Executor CLI invocation duration in seconds",
    ["command"],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 60.0, 120.0, 300.0, 600.0],
)


def start_metrics_server(port: int) -> bool:
    """Expose metrics over HTTP when a port is configured."""
    if port <= 0:
        return False
    start_http_server(port)
    return True
