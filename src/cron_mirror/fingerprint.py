"""
Change detection for the executor's job list.

The mirror loop stores a fingerprint of the last job list it wrote. When a
new listing hashes to the same value, the cycle does no writes.

Architecture:
    ::

        jobs ──► project(id, name, enabled, schedule,
                         nextRunAtMs, lastRunAtMs, lastStatus)
             ──► sort by id
             ──► canonical JSON (sorted keys, no whitespace)
             ──► FNV-1a 32-bit over UTF-8 bytes
             ──► 8-char lowercase hex

    Ordering of the listing never affects the result. Fields outside the
    projection (payload, lastDurationMs, ...) do not trigger a rewrite.

FNV-1a is a change detector, not a cryptographic hash. A collision means
one missed update, which the next differing listing repairs.

Examples:
    >>> fnv1a_32(b"")
    '811c9dc5'
    >>> fnv1a_32(b"a")
    'e40c292c'
"""

import json
from collections.abc import Iterable
from typing import Any

from cron_mirror.executor.schema import CronJob

FNV_OFFSET_BASIS = 0x811C9DC5
FNV_PRIME = 0x01000193


def fnv1a_32(data: bytes) -> str:
    """32-bit FNV-1a hash rendered as 8 lowercase hex digits."""
    h = FNV_OFFSET_BASIS
    for byte in data:
        h ^= byte
        h = (h * FNV_PRIME) & 0xFFFFFFFF
    return format(h, "08x")


def project_job(job: CronJob) -> dict[str, Any]:
    """Reduce a job to the fields that matter for change detection.

    Absent values are dropped so ``null`` and missing compare equal.
    """
    schedule = (
        job.schedule.model_dump(mode="json", by_alias=True, exclude_none=True)
        if job.schedule is not None
        else None
    )
    projection = {
        "id": job.id,
        "name": job.name,
        "enabled": job.enabled,
        "schedule": schedule,
        "nextRunAtMs": job.state.next_run_at_ms,
        "lastRunAtMs": job.state.last_run_at_ms,
        "lastStatus": job.state.last_status,
    }
    return {key: value for key, value in projection.items() if value is not None}


def fingerprint_jobs(jobs: Iterable[CronJob]) -> str:
    """Order-independent fingerprint of a job list."""
    # secondary key keeps duplicate ids order-independent too
    projected = sorted((project_job(job) for job in jobs), key=lambda p: (p["id"], _canonical(p)))
    return fnv1a_32(_canonical(projected).encode("utf-8"))


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)