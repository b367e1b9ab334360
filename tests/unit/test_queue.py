"""
Unit tests for the bounded task queue.
"""

import asyncio

import pytest

from ccbuild.constants import FailurePolicy, JobStatus
from ccbuild.errors import JobFailure, QueueAbortedError
from ccbuild.observability.metrics import MetricsCollector
from ccbuild.queue import BoundedTaskQueue


class Recorder:
    """Builds units of work and records when they start and finish."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []
        self.running = 0
        self.peak = 0
        self.gates: dict[str, asyncio.Event] = {}

    @property
    def started(self) -> list[str]:
        return [name for kind, name in self.events if kind == "start"]

    def job(self, name: str, delay: float = 0.0, fail: bool = False, result: object = None):
        async def run() -> object:
            self.events.append(("start", name))
            self.running += 1
            self.peak = max(self.peak, self.running)
            try:
                if name in self.gates:
                    await self.gates[name].wait()
                else:
                    await asyncio.sleep(delay)
                if fail:
                    raise RuntimeError(f"{name} failed")
                return result if result is not None else name
            finally:
                self.running -= 1
                self.events.append(("end", name))

        return run

    def gated(self, name: str) -> asyncio.Event:
        self.gates[name] = asyncio.Event()
        return self.gates[name]


class TestConstruction:
    """Tests for queue construction."""

    def test_rejects_zero_concurrency(self, metrics: MetricsCollector):
        """Test that a queue needs at least one slot."""
        with pytest.raises(ValueError):
            BoundedTaskQueue(0, metrics=metrics)

    def test_initial_state(self, make_queue):
        """Test a fresh queue is empty and idle."""
        queue = make_queue(4)

        assert queue.in_flight == 0
        assert queue.pending == 0
        assert queue.aborted is False
        assert queue.stats.max_concurrency == 4

    def test_submit_requires_running_loop(self, make_queue):
        """Test that submit outside an event loop is a programming error."""
        queue = make_queue(1)

        with pytest.raises(RuntimeError):
            queue.submit(Recorder().job("J1"))

        assert queue.stats.submitted == 0


class TestAdmission:
    """Tests for bounded, FIFO admission."""

    @pytest.mark.asyncio
    async def test_resolves_with_result(self, make_queue):
        """Test the submitter's future carries the unit of work's result."""
        queue = make_queue(2)
        recorder = Recorder()

        result = await queue.submit(recorder.job("J1", result=42))

        assert result == 42

    @pytest.mark.asyncio
    async def test_bound_respected(self, make_queue):
        """Test that no more than K jobs ever run at once."""
        queue = make_queue(3)
        recorder = Recorder()
        delays = [0.02, 0.01, 0.03, 0.005, 0.02, 0.01, 0.015, 0.0, 0.01, 0.02]

        futures = [
            queue.submit(recorder.job(f"J{i}", delay), name=f"J{i}")
            for i, delay in enumerate(delays)
        ]
        await asyncio.gather(*futures)

        assert recorder.peak == 3
        assert queue.stats.peak_in_flight == 3
        assert queue.stats.succeeded == len(delays)

    @pytest.mark.asyncio
    async def test_first_k_start_immediately(self, make_queue):
        """Test that jobs start synchronously while capacity is free."""
        queue = make_queue(2)
        recorder = Recorder()
        gates = [recorder.gated(name) for name in ("J1", "J2", "J3")]

        futures = [queue.submit(recorder.job(name), name=name) for name in ("J1", "J2", "J3")]

        assert queue.in_flight == 2
        assert queue.pending == 1

        for gate in gates:
            gate.set()
        await asyncio.gather(*futures)

    @pytest.mark.asyncio
    async def test_fifo_start_order(self, make_queue):
        """Test that queued jobs start in submission order."""
        queue = make_queue(1)
        recorder = Recorder()
        names = [f"J{i}" for i in range(1, 7)]

        futures = [queue.submit(recorder.job(name), name=name) for name in names]
        await asyncio.gather(*futures)

        assert recorder.started == names

    @pytest.mark.asyncio
    async def test_fifo_when_later_jobs_finish_first(self, make_queue):
        """Test that completion order does not reorder admission."""
        queue = make_queue(2)
        recorder = Recorder()
        slow = recorder.gated("J1")

        futures = [
            queue.submit(recorder.job("J1"), name="J1"),
            queue.submit(recorder.job("J2", 0.0), name="J2"),
            queue.submit(recorder.job("J3", 0.0), name="J3"),
            queue.submit(recorder.job("J4", 0.0), name="J4"),
        ]
        await asyncio.gather(*futures[1:])
        slow.set()
        await futures[0]

        assert recorder.started == ["J1", "J2", "J3", "J4"]

    @pytest.mark.asyncio
    async def test_completion_restores_capacity(self, make_queue):
        """Test that one completion starts exactly one queued job."""
        queue = make_queue(2)
        recorder = Recorder()
        gates = {name: recorder.gated(name) for name in ("J1", "J2", "J3", "J4")}

        futures = {name: queue.submit(recorder.job(name), name=name) for name in gates}
        assert (queue.in_flight, queue.pending) == (2, 2)

        # Admitted jobs begin running on the next loop iteration
        await asyncio.sleep(0)
        assert recorder.started == ["J1", "J2"]

        gates["J1"].set()
        await futures["J1"]

        assert queue.in_flight == 2
        assert queue.pending == 1
        await asyncio.sleep(0)
        assert recorder.started == ["J1", "J2", "J3"]

        for gate in gates.values():
            gate.set()
        await asyncio.gather(*futures.values())

    @pytest.mark.asyncio
    async def test_advance_is_idempotent(self, make_queue):
        """Test that advancing without capacity or work changes nothing."""
        queue = make_queue(1)
        recorder = Recorder()

        queue._advance()
        assert queue.stats.in_flight == 0
        assert recorder.started == []

        gate = recorder.gated("J1")
        futures = [queue.submit(recorder.job(name), name=name) for name in ("J1", "J2")]
        before = queue.stats

        queue._advance()
        queue._advance()

        assert queue.stats == before
        await asyncio.sleep(0)
        assert recorder.started == ["J1"]

        gate.set()
        await asyncio.gather(*futures)

    @pytest.mark.asyncio
    async def test_two_slots_slow_and_fast_jobs(self, make_queue):
        """Test J3 waits for J1 or J2 when the first two are slow."""
        queue = make_queue(2)
        recorder = Recorder()

        futures = [
            queue.submit(recorder.job("J1", 0.1), name="J1"),
            queue.submit(recorder.job("J2", 0.1), name="J2"),
            queue.submit(recorder.job("J3", 0.01), name="J3"),
            queue.submit(recorder.job("J4", 0.01), name="J4"),
        ]
        assert (queue.in_flight, queue.pending) == (2, 2)
        await asyncio.sleep(0)
        assert recorder.started == ["J1", "J2"]

        results = await asyncio.gather(*futures)

        events = recorder.events
        first_slow_end = min(events.index(("end", "J1")), events.index(("end", "J2")))
        assert events.index(("start", "J3")) > first_slow_end
        assert results == ["J1", "J2", "J3", "J4"]
        assert recorder.peak <= 2

    @pytest.mark.asyncio
    async def test_join_waits_for_all_jobs(self, make_queue):
        """Test join returns once nothing is pending or running."""
        queue = make_queue(2)
        recorder = Recorder()

        await queue.join()

        futures = [queue.submit(recorder.job(f"J{i}", 0.01)) for i in range(5)]
        await queue.join()

        assert all(future.done() for future in futures)
        assert queue.in_flight == 0
        assert queue.pending == 0

    @pytest.mark.asyncio
    async def test_default_job_names(self, make_queue):
        """Test jobs submitted without a name are numbered."""
        queue = make_queue(1, FailurePolicy.DRAIN)

        future = queue.submit(Recorder().job("x", fail=True))
        with pytest.raises(JobFailure) as exc_info:
            await future

        assert exc_info.value.job_name == "job-1"


class TestAbortPolicy:
    """Tests for abort-on-first-failure."""

    @pytest.mark.asyncio
    async def test_failure_stops_queue(self, make_queue, fatal_calls):
        """Test a failing job keeps queued jobs from ever starting."""
        queue = make_queue(1)
        recorder = Recorder()

        first = queue.submit(recorder.job("J1", 0.01, fail=True), name="J1")
        second = queue.submit(recorder.job("J2", 0.01), name="J2")

        with pytest.raises(JobFailure) as exc_info:
            await first
        with pytest.raises(QueueAbortedError):
            await second

        assert recorder.started == ["J1"]
        assert isinstance(exc_info.value.cause, RuntimeError)
        assert len(fatal_calls) == 1
        assert fatal_calls[0].job_name == "J1"
        assert queue.aborted is True

    @pytest.mark.asyncio
    async def test_in_flight_jobs_finish_after_abort(self, make_queue, fatal_calls):
        """Test running jobs still complete while queued ones are abandoned."""
        queue = make_queue(2)
        recorder = Recorder()
        gate = recorder.gated("J2")

        first = queue.submit(recorder.job("J1", 0.0, fail=True), name="J1")
        second = queue.submit(recorder.job("J2"), name="J2")
        third = queue.submit(recorder.job("J3", 0.0), name="J3")

        with pytest.raises(JobFailure):
            await first
        assert queue.in_flight == 1

        gate.set()
        assert await second == "J2"
        with pytest.raises(QueueAbortedError):
            await third
        await queue.join()

        stats = queue.stats
        assert stats.failed == 1
        assert stats.succeeded == 1
        assert stats.abandoned == 1
        assert stats.finished == 3
        assert stats.failed_jobs == ["J1"]
        assert recorder.started == ["J1", "J2"]
        assert len(fatal_calls) == 1

    @pytest.mark.asyncio
    async def test_fatal_handler_called_once(self, make_queue, fatal_calls):
        """Test a later failure of a running job is recorded but not fatal again."""
        queue = make_queue(2)
        recorder = Recorder()

        first = queue.submit(recorder.job("J1", 0.0, fail=True), name="J1")
        second = queue.submit(recorder.job("J2", 0.01, fail=True), name="J2")

        results = await asyncio.gather(first, second, return_exceptions=True)

        assert all(isinstance(result, JobFailure) for result in results)
        assert [failure.job_name for failure in queue.failures] == ["J1", "J2"]
        assert [failure.job_name for failure in fatal_calls] == ["J1"]

    @pytest.mark.asyncio
    async def test_submit_after_abort_is_refused(self, make_queue):
        """Test an aborted queue refuses new work."""
        queue = make_queue(1)

        with pytest.raises(JobFailure):
            await queue.submit(Recorder().job("J1", fail=True))

        with pytest.raises(QueueAbortedError):
            queue.submit(Recorder().job("J2"))

    @pytest.mark.asyncio
    async def test_thunk_raising_synchronously_is_a_failure(self, make_queue, fatal_calls):
        """Test a unit of work that raises before returning an awaitable."""
        queue = make_queue(1)

        def broken():
            raise ValueError("bad job")

        with pytest.raises(JobFailure) as exc_info:
            await queue.submit(broken, name="broken")

        assert isinstance(exc_info.value.cause, ValueError)
        assert fatal_calls[0].job_name == "broken"
        assert queue.in_flight == 0

    @pytest.mark.asyncio
    async def test_non_awaitable_is_a_failure(self, make_queue):
        """Test a unit of work returning a plain value fails the job."""
        queue = make_queue(1)

        with pytest.raises(JobFailure) as exc_info:
            await queue.submit(lambda: 42)

        assert isinstance(exc_info.value.cause, TypeError)

    def test_default_handler_exits_process(self, metrics: MetricsCollector, capsys):
        """Test the default fatal handler terminates with status 1 before J2 starts."""
        recorder = Recorder()
        futures: list[asyncio.Future] = []

        async def build() -> None:
            queue = BoundedTaskQueue(1, metrics=metrics, name="exit")
            futures.append(queue.submit(recorder.job("J1", fail=True), name="bundle.js"))
            futures.append(queue.submit(recorder.job("J2"), name="other.js"))
            await queue.join()

        with pytest.raises(SystemExit) as exc_info:
            asyncio.run(build())

        assert exc_info.value.code == 1
        assert "J1 failed" in capsys.readouterr().err
        assert recorder.started == ["J1"]
        assert isinstance(futures[0].exception(), JobFailure)
        assert isinstance(futures[1].exception(), QueueAbortedError)


class TestDrainPolicy:
    """Tests for drain-and-report."""

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_queue(self, make_queue, fatal_calls):
        """Test queued work still runs after a failure."""
        queue = make_queue(1, FailurePolicy.DRAIN)
        recorder = Recorder()

        first = queue.submit(recorder.job("J1", 0.01, fail=True), name="J1")
        second = queue.submit(recorder.job("J2", 0.01), name="J2")

        with pytest.raises(JobFailure):
            await first
        assert await second == "J2"

        assert recorder.started == ["J1", "J2"]
        assert fatal_calls == []
        assert queue.aborted is False
        assert [failure.job_name for failure in queue.failures] == ["J1"]

    @pytest.mark.asyncio
    async def test_collects_every_failure(self, make_queue):
        """Test all failures are recorded in completion order."""
        queue = make_queue(2, FailurePolicy.DRAIN)
        recorder = Recorder()

        futures = [
            queue.submit(recorder.job(f"J{i}", 0.01 * i, fail=i % 2 == 0), name=f"J{i}")
            for i in range(1, 7)
        ]
        results = await asyncio.gather(*futures, return_exceptions=True)
        await queue.join()

        assert [failure.job_name for failure in queue.failures] == ["J2", "J4", "J6"]
        assert [r for r in results if not isinstance(r, JobFailure)] == ["J1", "J3", "J5"]
        assert queue.stats.failed == 3
        assert queue.stats.succeeded == 3


class TestQueueMetrics:
    """Tests for queue metrics."""

    @pytest.mark.asyncio
    async def test_records_submissions_and_completions(self, make_queue, metrics: MetricsCollector):
        """Test counters and gauges follow the queue."""
        queue = make_queue(1, FailurePolicy.DRAIN)
        recorder = Recorder()
        registry = metrics._registry

        futures = [
            queue.submit(recorder.job("J1", 0.0)),
            queue.submit(recorder.job("J2", 0.0, fail=True)),
        ]
        assert registry.get_sample_value("compile_queue_in_flight", {"queue": "test"}) == 1
        assert registry.get_sample_value("compile_queue_depth", {"queue": "test"}) == 1

        await asyncio.gather(*futures, return_exceptions=True)

        assert registry.get_sample_value("compile_jobs_submitted_total", {"queue": "test"}) == 2
        assert registry.get_sample_value(
            "compile_jobs_completed_total", {"queue": "test", "status": JobStatus.SUCCEEDED}
        ) == 1
        assert registry.get_sample_value(
            "compile_jobs_completed_total", {"queue": "test", "status": JobStatus.FAILED}
        ) == 1
        assert registry.get_sample_value("compile_queue_in_flight", {"queue": "test"}) == 0

    @pytest.mark.asyncio
    async def test_exposition(self, make_queue, metrics: MetricsCollector, tmp_path):
        """Test metrics render in text format and to a textfile."""
        queue = make_queue(2)

        await queue.submit(Recorder().job("J1"))
        textfile = tmp_path / "ccbuild.prom"
        metrics.write_textfile(str(textfile))

        assert b'compile_jobs_submitted_total{queue="test"} 1.0' in metrics.get_metrics()
        assert 'compile_queue_depth{queue="test"} 0.0' in textfile.read_text()
