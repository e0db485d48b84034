"""Data-access repositories for the mirror store."""

from cron_mirror.repositories.activities import ActivityRepository
from cron_mirror.repositories.base import BaseRepository
from cron_mirror.repositories.mirror import MirrorRepository
from cron_mirror.repositories.requests import RequestQueueRepository

__all__ = [
    "ActivityRepository",
    "BaseRepository",
    "MirrorRepository",
    "RequestQueueRepository",
]
