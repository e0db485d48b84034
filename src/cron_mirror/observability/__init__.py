"""Observability - logging and metrics."""

from cron_mirror.observability.logging import configure_logging, get_logger
from cron_mirror.observability.metrics import (
    executor_duration_histogram,
    loop_failures_counter,
    mirror_cycles_counter,
    mirrored_jobs_gauge,
    requests_processed_counter,
    start_metrics_server,
    watchdog_failed_counter,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "executor_duration_histogram",
    "loop_failures_counter",
    "mirror_cycles_counter",
    "mirrored_jobs_gauge",
    "requests_processed_counter",
    "start_metrics_server",
    "watchdog_failed_counter",
]
