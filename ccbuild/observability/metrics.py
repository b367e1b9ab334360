"""
Prometheus metrics collection.
"""

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    CollectorRegistry,
    generate_latest,
    write_to_textfile,
    REGISTRY,
)

from ccbuild.constants import (
    METRIC_QUEUE_DEPTH,
    METRIC_IN_FLIGHT,
    METRIC_JOBS_SUBMITTED,
    METRIC_JOBS_COMPLETED,
    METRIC_JOB_DURATION,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for bounded task queues.

    Collects metrics for:
    - Queue depth and in-flight jobs
    - Job submissions and completions
    - Job execution duration
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        # Pending jobs gauge (by queue)
        self.queue_depth = Gauge(
            METRIC_QUEUE_DEPTH,
            "Number of jobs waiting for a free slot",
            ["queue"],
            registry=self._registry,
        )

        # Running jobs gauge (by queue)
        self.in_flight = Gauge(
            METRIC_IN_FLIGHT,
            "Number of jobs currently running",
            ["queue"],
            registry=self._registry,
        )

        self.jobs_submitted = Counter(
            METRIC_JOBS_SUBMITTED,
            "Total number of jobs submitted",
            ["queue"],
            registry=self._registry,
        )

        self.jobs_completed = Counter(
            METRIC_JOBS_COMPLETED,
            "Total number of jobs finished, by final status",
            ["queue", "status"],
            registry=self._registry,
        )

        # Compiler invocations take seconds to minutes
        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Job execution duration in seconds",
            ["queue", "status"],
            buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
            registry=self._registry,
        )

    def record_job_submitted(self, queue: str) -> None:
        """Record a job submission."""
        self.jobs_submitted.labels(queue=queue).inc()

    def record_job_completed(
        self,
        queue: str,
        status: str,
        duration_seconds: float | None = None,
    ) -> None:
        """Record a job reaching a final status."""
        self.jobs_completed.labels(queue=queue, status=status).inc()
        if duration_seconds is not None:
            self.job_duration.labels(queue=queue, status=status).observe(
                duration_seconds
            )

    def update_queue_state(self, queue: str, pending: int, in_flight: int) -> None:
        """Update depth and in-flight gauges for a queue."""
        self.queue_depth.labels(queue=queue).set(pending)
        self.in_flight.labels(queue=queue).set(in_flight)

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def write_textfile(self, path: str) -> None:
        """Write all metrics to a node-exporter textfile."""
        write_to_textfile(path, self._registry)


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
