"""Staleness scan over the task store."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Protocol

import structlog

from models.schemas import Task

logger = structlog.get_logger(__name__)


class StaleTaskSource(Protocol):
    async def find_incomplete_before(self, cutoff: datetime) -> list[Task]: ...


def _utcnow() -> datetime:
    return datetime.now(UTC)


class StalenessScanner:
    """Finds incomplete tasks older than a threshold.

    The cutoff is recomputed from the clock on every call. Read-only.
    """

    def __init__(
        self,
        task_store: StaleTaskSource,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.task_store = task_store
        self._clock = clock

    async def find_stale(self, threshold: timedelta) -> list[Task]:
        """Return incomplete tasks created before ``now - threshold``, oldest first."""
        cutoff = self._clock() - threshold
        tasks = await self.task_store.find_incomplete_before(cutoff)
        logger.debug(
            "stale_tasks_scanned",
            cutoff=cutoff.isoformat(),
            stale_count=len(tasks),
        )
        return tasks
