"""Append-only audit log (``activities`` table)."""

from __future__ import annotations

from cron_mirror.repositories.base import BaseRepository


class ActivityRepository(BaseRepository):
    table = "activities"

    def record(self, type: str, message: str, actor_agent_key: str | None = None) -> None:
        """Insert one audit event for this project."""
        self.insert({"type": type, "message": message, "actor_agent_key": actor_agent_key})
