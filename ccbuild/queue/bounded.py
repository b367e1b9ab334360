"""
Bounded task queue.

Admits submitted units of work in FIFO order and runs at most
``max_concurrency`` of them at once. Every submitter gets a future for its
own job. All bookkeeping runs on the event loop thread, inside ``submit``
and future done-callbacks, so no locking is needed.
"""

import asyncio
import itertools
import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import replace
from functools import partial
from typing import Any

from ccbuild.constants import DEFAULT_MAX_CONCURRENCY, FailurePolicy, JobStatus
from ccbuild.errors import JobFailure, QueueAbortedError, report_fatal
from ccbuild.observability.metrics import MetricsCollector, get_metrics
from ccbuild.types.job import QueuedJob, QueueStats, UnitOfWork

logger = logging.getLogger(__name__)

FatalHandler = Callable[[JobFailure], Any]


class BoundedTaskQueue:
    """
    Admission-controlled runner for asynchronous units of work.

    Features:
    - FIFO start order, at most ``max_concurrency`` jobs running
    - Per-job futures resolved with the unit of work's result
    - Abort-on-first-failure (default) or drain-and-report failure policy
    """

    def __init__(
        self,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        *,
        failure_policy: FailurePolicy = FailurePolicy.ABORT,
        on_fatal: FatalHandler | None = None,
        metrics: MetricsCollector | None = None,
        name: str = "default",
    ):
        """
        Initialize the queue.

        Args:
            max_concurrency: Upper bound on concurrently running jobs.
            failure_policy: ABORT stops the queue on the first failure,
                DRAIN records it and keeps going.
            on_fatal: Called once with the failure when the queue aborts.
                Defaults to reporting the failure and exiting the process.
            metrics: Metrics collector. Defaults to the shared one.
            name: Label for logs and metrics.
        """
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")

        self.name = name
        self.max_concurrency = max_concurrency
        self.failure_policy = FailurePolicy(failure_policy)

        self._on_fatal = on_fatal or report_fatal
        self._metrics = metrics or get_metrics()
        self._pending: deque[QueuedJob] = deque()
        self._in_flight = 0
        self._seq = itertools.count(1)
        self._stats = QueueStats(max_concurrency=max_concurrency)
        self._failures: list[JobFailure] = []
        self._aborted = False
        self._idle: asyncio.Event | None = None

    @property
    def in_flight(self) -> int:
        """Number of jobs currently running."""
        return self._in_flight

    @property
    def pending(self) -> int:
        """Number of jobs waiting for a free slot."""
        return len(self._pending)

    @property
    def aborted(self) -> bool:
        """True once a failure stopped the queue under the ABORT policy."""
        return self._aborted

    @property
    def failures(self) -> list[JobFailure]:
        """Every failure recorded so far, in completion order."""
        return list(self._failures)

    @property
    def stats(self) -> QueueStats:
        """Snapshot of the queue counters."""
        return replace(
            self._stats,
            in_flight=self._in_flight,
            pending=len(self._pending),
            aborted=self._aborted,
            failed_jobs=list(self._stats.failed_jobs),
        )

    def submit(self, unit_of_work: UnitOfWork, *, name: str | None = None) -> asyncio.Future:
        """
        Submit a unit of work.

        Must be called with a running event loop.

        Args:
            unit_of_work: Zero-argument callable returning an awaitable.
                Invoked exactly once, when the job is admitted.
            name: Display name used in logs and failure reports.

        Returns:
            A future resolved with the unit of work's result.

        Raises:
            QueueAbortedError: If the queue already aborted.
        """
        if self._aborted:
            raise QueueAbortedError(self._failures[0] if self._failures else None)

        loop = asyncio.get_running_loop()
        seq = next(self._seq)
        job = QueuedJob(
            seq=seq,
            name=name or f"job-{seq}",
            unit_of_work=unit_of_work,
            future=loop.create_future(),
        )

        self._pending.append(job)
        self._stats.submitted += 1
        self._metrics.record_job_submitted(self.name)
        if self._idle is not None:
            self._idle.clear()

        logger.debug(
            "Job queued",
            extra={"queue": self.name, "job": job.name, "pending": len(self._pending)},
        )

        self._advance()
        return job.future

    async def join(self) -> None:
        """
        Wait until no job is pending or running.

        Returns early if the queue aborts, since queued jobs will
        never start.
        """
        if self._is_idle():
            return
        if self._idle is None:
            self._idle = asyncio.Event()
        await self._idle.wait()

    def _is_idle(self) -> bool:
        return self._in_flight == 0 and (self._aborted or not self._pending)

    def _advance(self) -> None:
        """Start queued jobs while capacity is free. No-op otherwise."""
        while self._pending and self._in_flight < self.max_concurrency and not self._aborted:
            self._start(self._pending.popleft())
        self._publish_state()

    def _start(self, job: QueuedJob) -> None:
        self._in_flight += 1
        self._stats.peak_in_flight = max(self._stats.peak_in_flight, self._in_flight)
        job.status = JobStatus.RUNNING
        job.started_at = time.monotonic()

        logger.info(
            "Job started",
            extra={"queue": self.name, "job": job.name, "in_flight": self._in_flight},
        )

        try:
            task = asyncio.ensure_future(job.unit_of_work())
        except Exception as e:
            # The thunk raised before producing an awaitable
            task = asyncio.get_running_loop().create_future()
            task.set_exception(e)

        task.add_done_callback(partial(self._on_done, job))

    def _on_done(self, job: QueuedJob, task: asyncio.Future) -> None:
        self._in_flight -= 1
        job.finished_at = time.monotonic()

        if task.cancelled():
            error: BaseException = asyncio.CancelledError(f"{job.name} was cancelled")
        else:
            error = task.exception()

        if error is None:
            self._on_success(job, task.result())
        else:
            self._on_failure(job, error)

        if self._idle is not None and self._is_idle():
            self._idle.set()

    def _on_success(self, job: QueuedJob, result: Any) -> None:
        job.status = JobStatus.SUCCEEDED
        self._stats.succeeded += 1
        self._metrics.record_job_completed(self.name, job.status, job.duration_seconds)

        logger.info(
            "Job succeeded",
            extra={
                "queue": self.name,
                "job": job.name,
                "duration": f"{job.duration_seconds:.2f}s",
            },
        )

        self._advance()
        if not job.future.done():
            job.future.set_result(result)

    def _on_failure(self, job: QueuedJob, error: BaseException) -> None:
        failure = JobFailure(job.name, error)
        job.status = JobStatus.FAILED
        self._failures.append(failure)
        self._stats.failed += 1
        self._stats.failed_jobs.append(job.name)
        self._metrics.record_job_completed(self.name, job.status, job.duration_seconds)

        logger.error(
            "Job failed",
            extra={
                "queue": self.name,
                "job": job.name,
                "error": str(error),
                "policy": self.failure_policy.value,
            },
        )

        if not job.future.done():
            job.future.set_exception(failure)

        if self.failure_policy is FailurePolicy.DRAIN:
            self._advance()
            return

        # Jobs still running at abort time may fail too; report only the first
        if self._aborted:
            return

        self._abort(failure)
        self._on_fatal(failure)

    def _abort(self, failure: JobFailure) -> None:
        """Stop admitting work and abandon everything still queued."""
        self._aborted = True
        abandoned = len(self._pending)

        while self._pending:
            job = self._pending.popleft()
            job.status = JobStatus.ABANDONED
            self._stats.abandoned += 1
            self._metrics.record_job_completed(self.name, job.status)
            if not job.future.done():
                job.future.set_exception(QueueAbortedError(failure))
                # Nobody may ever await an abandoned job
                job.future.exception()

        self._publish_state()

        logger.error(
            "Queue aborted",
            extra={
                "queue": self.name,
                "failed_job": failure.job_name,
                "abandoned": abandoned,
                "in_flight": self._in_flight,
            },
        )

    def _publish_state(self) -> None:
        self._metrics.update_queue_state(self.name, len(self._pending), self._in_flight)
