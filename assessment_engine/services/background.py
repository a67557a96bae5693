"""
Background Task Runner - Assessment Engine
assessment_engine/services/background.py

Fire-and-forget jobs with a failure channel:

  - every job runs as its own asyncio task, referenced until it finishes
  - a failed job is logged with its context and appended to a bounded
    dead-letter list (oldest entries drop first)
  - no new jobs are accepted once shutdown has been signalled
  - drain() waits for in-flight jobs, used on shutdown and in tests
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Set

import structlog

from assessment_engine.config import get_settings
from assessment_engine.shutdown import is_shutting_down

logger = structlog.get_logger(__name__)

JobFactory = Callable[[], Awaitable[Any]]


@dataclass
class DeadLetter:
    job: str
    error: str
    context: Dict[str, Any] = field(default_factory=dict)
    failed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class BackgroundTaskRunner:
    """Tracks background jobs and records their failures."""

    def __init__(self, dead_letter_capacity: Optional[int] = None):
        capacity = dead_letter_capacity or get_settings().DEAD_LETTER_CAPACITY
        self._tasks: Set[asyncio.Task] = set()
        self.dead_letters: Deque[DeadLetter] = deque(maxlen=capacity)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, job: str, factory: JobFactory, **context: Any) -> Optional[asyncio.Task]:
        """
        Schedule ``factory()`` on the running loop.

        Returns:
            The task, or None when the app is shutting down
        """
        if is_shutting_down():
            logger.warning("background_job_rejected", job=job, reason="shutting_down", **context)
            return None

        task = asyncio.get_running_loop().create_task(self._run(job, factory, context))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, job: str, factory: JobFactory, context: Dict[str, Any]) -> None:
        logger.debug("background_job_started", job=job, **context)
        try:
            await factory()
        except asyncio.CancelledError:
            logger.warning("background_job_cancelled", job=job, **context)
            raise
        except Exception as e:
            logger.error("background_job_failed", job=job, error=str(e), exc_info=True, **context)
            self.dead_letters.append(DeadLetter(job=job, error=str(e), context=dict(context)))
        else:
            logger.debug("background_job_finished", job=job, **context)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for every in-flight job, cancelling what is left after ``timeout``."""
        # Jobs may schedule follow-up jobs, so loop until the set stays empty
        while self._tasks:
            _, not_done = await asyncio.wait(list(self._tasks), timeout=timeout)
            if not_done:
                for task in not_done:
                    task.cancel()
                await asyncio.gather(*not_done, return_exceptions=True)
                logger.warning("background_jobs_cancelled_on_drain", count=len(not_done))
                return

    def recent_failures(self, limit: int = 20) -> List[DeadLetter]:
        return list(self.dead_letters)[-limit:]


@lru_cache
def get_background_runner() -> BackgroundTaskRunner:
    return BackgroundTaskRunner()
