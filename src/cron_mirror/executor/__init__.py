"""Executor CLI client and output schema."""

from cron_mirror.executor.client import CronExecutor, build_edit_args
from cron_mirror.executor.schema import (
    CronJob,
    CronSchedule,
    EverySchedule,
    JobPayload,
    JobState,
    OtherSchedule,
    parse_job_list,
)

__all__ = [
    "CronExecutor",
    "CronJob",
    "CronSchedule",
    "EverySchedule",
    "JobPayload",
    "JobState",
    "OtherSchedule",
    "build_edit_args",
    "parse_job_list",
]
