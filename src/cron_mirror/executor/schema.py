"""Pydantic models for the executor's ``cron list --all --json`` output.

The executor reports schedules as a loosely typed object. Two shapes are
understood (``cron`` and ``every``); anything else is kept verbatim as an
``OtherSchedule`` so new kinds are mirrored instead of rejected.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from cron_mirror.errors import ExecutorOutputError


class CronSchedule(BaseModel):
    """Cron expression schedule. Extra fields are kept for fingerprinting."""

    model_config = ConfigDict(extra="allow")

    kind: Literal["cron"] = "cron"
    expr: str = Field(..., description="Cron expression")
    tz: str | None = Field(default=None, description="IANA time zone")


class EverySchedule(BaseModel):
    """Fixed interval schedule. Extra fields (``anchorMs``, ...) are kept."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    kind: Literal["every"] = "every"
    every_ms: int = Field(..., ge=0, alias="everyMs", description="Interval in milliseconds")


class OtherSchedule(BaseModel):
    """Schedule kind this service does not interpret; extra fields are kept."""

    model_config = ConfigDict(extra="allow")

    kind: str | None = None


def _schedule_tag(value: Any) -> str:
    kind = value.get("kind") if isinstance(value, dict) else getattr(value, "kind", None)
    return kind if kind in ("cron", "every") else "other"


Schedule = Annotated[
    Union[
        Annotated[CronSchedule, Tag("cron")],
        Annotated[EverySchedule, Tag("every")],
        Annotated[OtherSchedule, Tag("other")],
    ],
    Discriminator(_schedule_tag),
]


class JobState(BaseModel):
    """Runtime state the executor tracks per job."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    next_run_at_ms: int | float | None = Field(default=None, alias="nextRunAtMs")
    last_run_at_ms: int | float | None = Field(default=None, alias="lastRunAtMs")
    last_status: str | None = Field(default=None, alias="lastStatus")
    last_duration_ms: int | float | None = Field(default=None, alias="lastDurationMs")


class JobPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: str | None = None


class CronJob(BaseModel):
    """One job as reported by the executor."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(..., min_length=1)
    name: str | None = None
    enabled: bool = False
    schedule: Schedule | None = None
    state: JobState = Field(default_factory=JobState)
    payload: JobPayload | None = None
    session_target: str | None = Field(default=None, alias="sessionTarget")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        """Numeric ids are accepted and treated as strings."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("state", mode="before")
    @classmethod
    def null_state(cls, v: Any) -> Any:
        """``"state": null`` means the same as no state at all."""
        return {} if v is None else v

    @property
    def instructions(self) -> str | None:
        return self.payload.message if self.payload else None


_JOB_LIST = TypeAdapter(list[CronJob])


def parse_job_list(stdout: str) -> list[CronJob]:
    """Parse and validate ``cron list --all --json`` output.

    Accepts ``{"jobs": [...]}`` or a bare array.

    Raises:
        ExecutorOutputError: Invalid JSON, an unexpected top-level shape, or
            a job that fails validation.
    """
    try:
        data = json.loads(stdout)
    except json.JSONDecodeError as exc:
        raise ExecutorOutputError(
            f"executor cron list returned invalid JSON: {exc}",
            stdout=stdout[:500],
        ) from exc

    if isinstance(data, dict) and isinstance(data.get("jobs"), list):
        raw_jobs = data["jobs"]
    elif isinstance(data, list):
        raw_jobs = data
    else:
        raise ExecutorOutputError(
            "executor cron list returned neither {jobs: [...]} nor an array",
            top_level=type(data).__name__,
        )

    try:
        return _JOB_LIST.validate_python(raw_jobs)
    except ValidationError as exc:
        raise ExecutorOutputError(
            f"executor cron list failed validation: {exc.error_count()} error(s)",
            errors=exc.errors(include_url=False),
        ) from exc
