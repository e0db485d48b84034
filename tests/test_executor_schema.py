"""Tests for executor output parsing."""

import json

import pytest

from cron_mirror.errors import ExecutorOutputError
from cron_mirror.executor.schema import (
    CronSchedule,
    EverySchedule,
    OtherSchedule,
    parse_job_list,
)


class TestTopLevelShape:
    """Test accepted and rejected listing shapes."""

    def test_jobs_object(self):
        jobs = parse_job_list(json.dumps({"jobs": [{"id": "a"}]}))
        assert [j.id for j in jobs] == ["a"]

    def test_bare_array(self):
        jobs = parse_job_list(json.dumps([{"id": "a"}, {"id": "b"}]))
        assert [j.id for j in jobs] == ["a", "b"]

    def test_empty_jobs(self):
        assert parse_job_list('{"jobs": []}') == []

    @pytest.mark.parametrize("payload", ['{"items": []}', '"jobs"', "42", "null", '{"jobs": {}}'])
    def test_unexpected_shape_rejected(self, payload):
        """Anything but {jobs: [...]} or an array is an output error."""
        with pytest.raises(ExecutorOutputError):
            parse_job_list(payload)

    def test_invalid_json_rejected(self):
        with pytest.raises(ExecutorOutputError, match="invalid JSON"):
            parse_job_list("Gateway not running\n")

    def test_job_without_id_rejected(self):
        with pytest.raises(ExecutorOutputError, match="validation"):
            parse_job_list(json.dumps([{"name": "no id"}]))


class TestSchedules:
    """Test the schedule tagged union."""

    def test_cron(self):
        (job,) = parse_job_list(
            json.dumps([{"id": "a", "schedule": {"kind": "cron", "expr": "0 9 * * *", "tz": "Europe/Oslo"}}])
        )
        assert isinstance(job.schedule, CronSchedule)
        assert job.schedule.expr == "0 9 * * *"
        assert job.schedule.tz == "Europe/Oslo"

    def test_every(self):
        (job,) = parse_job_list(json.dumps([{"id": "a", "schedule": {"kind": "every", "everyMs": 300000}}]))
        assert isinstance(job.schedule, EverySchedule)
        assert job.schedule.every_ms == 300000

    def test_unknown_kind_kept(self):
        """Unknown kinds fall into the catch-all and keep their fields."""
        (job,) = parse_job_list(
            json.dumps([{"id": "a", "schedule": {"kind": "at", "atMs": 1700000000000}}])
        )
        assert isinstance(job.schedule, OtherSchedule)
        assert job.schedule.kind == "at"
        assert job.schedule.model_dump()["atMs"] == 1700000000000

    def test_known_kinds_keep_extra_fields(self):
        (cron, every) = parse_job_list(
            json.dumps(
                [
                    {"id": "a", "schedule": {"kind": "cron", "expr": "0 * * * *", "staggerMs": 500}},
                    {"id": "b", "schedule": {"kind": "every", "everyMs": 60000, "anchorMs": 7}},
                ]
            )
        )
        assert cron.schedule.model_dump()["staggerMs"] == 500
        assert every.schedule.model_dump(by_alias=True) == {"kind": "every", "everyMs": 60000, "anchorMs": 7}

    def test_cron_without_expr_rejected(self):
        with pytest.raises(ExecutorOutputError):
            parse_job_list(json.dumps([{"id": "a", "schedule": {"kind": "cron"}}]))

    def test_missing_schedule(self):
        (job,) = parse_job_list(json.dumps([{"id": "a"}]))
        assert job.schedule is None


class TestCronJob:
    """Test job field handling."""

    def test_numeric_id_coerced(self):
        (job,) = parse_job_list(json.dumps([{"id": 17}]))
        assert job.id == "17"

    def test_state_and_payload(self):
        (job,) = parse_job_list(
            json.dumps(
                [
                    {
                        "id": "a",
                        "state": {"nextRunAtMs": 10, "lastRunAtMs": 5, "lastStatus": "ok", "lastDurationMs": 42},
                        "payload": {"message": "do things"},
                        "sessionTarget": "agent:ops:main",
                    }
                ]
            )
        )
        assert job.state.next_run_at_ms == 10
        assert job.state.last_duration_ms == 42
        assert job.instructions == "do things"
        assert job.session_target == "agent:ops:main"

    def test_null_state_same_as_missing(self):
        (with_null, without) = parse_job_list(json.dumps([{"id": "a", "state": None}, {"id": "a"}]))
        assert with_null.state == without.state
        assert with_null.state.next_run_at_ms is None

    def test_defaults(self):
        (job,) = parse_job_list(json.dumps([{"id": "a"}]))
        assert job.enabled is False
        assert job.name is None
        assert job.instructions is None
        assert job.state.last_status is None
