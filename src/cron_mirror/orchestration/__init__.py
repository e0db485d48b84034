"""Loop scheduling: runners, backoff and the service orchestrator."""

from cron_mirror.orchestration.backoff import Backoff
from cron_mirror.orchestration.orchestrator import Heartbeat, Orchestrator
from cron_mirror.orchestration.runner import LoopRunner, LoopStats

__all__ = [
    "Backoff",
    "Heartbeat",
    "LoopRunner",
    "LoopStats",
    "Orchestrator",
]
