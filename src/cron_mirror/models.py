"""Domain models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

SENTINEL_JOB_ID = "__mirror_state__"
SENTINEL_NAME = "mirror state (do not delete)"
SENTINEL_SCHEDULE_KIND = "state"
DEFAULT_TARGET_AGENT_KEY = "agent:main:main"


class RequestStatus(str, Enum):
    """Status of a queued command request.

    Transitions only move forward: queued -> running -> done | error,
    plus the watchdog's queued -> error.
    """

    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (RequestStatus.DONE, RequestStatus.ERROR)


class RequestKind(str, Enum):
    """The command queues drained against the executor."""

    RUN = "run"
    DELETE = "delete"
    PATCH = "patch"

    @property
    def table(self) -> str:
        return _QUEUE_TABLES[self]

    @property
    def has_payload(self) -> bool:
        return self is RequestKind.PATCH


_QUEUE_TABLES = {
    RequestKind.RUN: "cron_run_requests",
    RequestKind.DELETE: "cron_delete_requests",
    RequestKind.PATCH: "cron_job_patch_requests",
}


@dataclass
class CommandRequest:
    """A row from one of the command queues."""

    id: str
    kind: RequestKind
    job_id: str
    status: RequestStatus
    requested_at: datetime
    requested_by: str | None = None
    picked_up_at: datetime | None = None
    completed_at: datetime | None = None
    patch: dict[str, Any] | None = None
    result: dict[str, Any] | None = None


@dataclass
class CommandOutput:
    """Captured outcome of one executor invocation."""

    exit_code: int | None
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.exit_code == 0


@dataclass
class MirrorRow:
    """One row of the cron_mirror table."""

    project_id: str
    job_id: str
    name: str
    schedule_kind: str | None = None
    schedule_expr: str | None = None
    tz: str | None = None
    enabled: bool = False
    next_run_at: datetime | None = None
    last_run_at: datetime | None = None
    last_status: str | None = None
    last_duration_ms: int | None = None
    instructions: str | None = None
    target_agent_key: str | None = None

    @classmethod
    def sentinel(cls, project_id: str, fingerprint: str) -> "MirrorRow":
        """The reserved row that stores the last-seen fingerprint."""
        return cls(
            project_id=project_id,
            job_id=SENTINEL_JOB_ID,
            name=SENTINEL_NAME,
            schedule_kind=SENTINEL_SCHEDULE_KIND,
            schedule_expr=fingerprint,
            enabled=False,
        )


@dataclass
class MirrorResult:
    """Outcome of one mirror cycle."""

    changed: bool
    count: int
    fingerprint: str
    pruned: int = 0


@dataclass
class DrainResult:
    """Outcome of one drain cycle."""

    kind: RequestKind
    processed: int = 0
    done: int = 0
    failed: int = 0
    skipped: int = 0
    request_ids: list[str] = field(default_factory=list)
