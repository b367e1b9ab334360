"""
Job-related type definitions for internal use.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from ccbuild.constants import JobStatus

# A unit of work: invoked once, returns something awaitable.
UnitOfWork = Callable[[], Awaitable[Any]]


@dataclass
class QueuedJob:
    """
    A submitted unit of work and the future its submitter awaits.
    Lives in the queue until its completion has been handled.
    """

    seq: int
    name: str
    unit_of_work: UnitOfWork
    future: asyncio.Future
    status: JobStatus = JobStatus.QUEUED
    started_at: float | None = None
    finished_at: float | None = None

    @property
    def duration_seconds(self) -> float | None:
        """Wall time between start and completion, if both happened."""
        if self.started_at is None or self.finished_at is None:
            return None
        return self.finished_at - self.started_at


@dataclass
class QueueStats:
    """
    Point-in-time counters for a bounded task queue.
    """

    max_concurrency: int
    submitted: int = 0
    in_flight: int = 0
    pending: int = 0
    succeeded: int = 0
    failed: int = 0
    abandoned: int = 0
    peak_in_flight: int = 0
    aborted: bool = False
    failed_jobs: list[str] = field(default_factory=list)

    @property
    def finished(self) -> int:
        """Jobs that will never run again."""
        return self.succeeded + self.failed + self.abandoned
