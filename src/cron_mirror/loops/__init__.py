"""The service's periodic loops."""

from cron_mirror.loops.drain import DeleteRequestDrain, DrainLoop, PatchRequestDrain, RunRequestDrain
from cron_mirror.loops.mirror import MirrorLoop, derive_target_agent_key, job_to_row
from cron_mirror.loops.watchdog import Watchdog

__all__ = [
    "DeleteRequestDrain",
    "DrainLoop",
    "MirrorLoop",
    "PatchRequestDrain",
    "RunRequestDrain",
    "Watchdog",
    "derive_target_agent_key",
    "job_to_row",
]
