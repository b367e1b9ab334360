"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class JobStatus(StrEnum):
    """
    Job lifecycle states inside a bounded task queue.

    State transitions:
    - QUEUED -> RUNNING (capacity available)
    - RUNNING -> SUCCEEDED (unit of work resolved)
    - RUNNING -> FAILED (unit of work raised)
    - QUEUED -> ABANDONED (queue aborted before the job could start)
    """

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABANDONED = "abandoned"


class FailurePolicy(StrEnum):
    """What a queue does when one of its jobs fails."""

    ABORT = "abort"
    DRAIN = "drain"


class CompilationLevel(StrEnum):
    """Closure Compiler optimization levels."""

    WHITESPACE_ONLY = "WHITESPACE_ONLY"
    SIMPLE_OPTIMIZATIONS = "SIMPLE_OPTIMIZATIONS"
    ADVANCED_OPTIMIZATIONS = "ADVANCED_OPTIMIZATIONS"


# Default values
DEFAULT_MAX_CONCURRENCY = 4
DEFAULT_COMPILATION_LEVEL = CompilationLevel.SIMPLE_OPTIMIZATIONS
DEFAULT_OUTPUT_WRAPPER = "(function(){%output%})();"
WRAPPER_CONTENTS_PLACEHOLDER = "<%= contents %>"
COMPILER_OUTPUT_PLACEHOLDER = "%output%"

# Tokens substituted into compiled output
RUNTIME_VERSION_TOKEN = "$internalRuntimeVersion$"
RUNTIME_TOKEN_TOKEN = "$internalRuntimeToken$"

# Exit codes
EXIT_SUCCESS = 0
EXIT_BUILD_FAILURE = 1

# Metrics names
METRIC_QUEUE_DEPTH = "compile_queue_depth"
METRIC_IN_FLIGHT = "compile_queue_in_flight"
METRIC_JOBS_SUBMITTED = "compile_jobs_submitted_total"
METRIC_JOBS_COMPLETED = "compile_jobs_completed_total"
METRIC_JOB_DURATION = "compile_job_duration_seconds"

# Trace span names
SPAN_COMPILE = "closure_compile"
SPAN_POSTPROCESS = "postprocess_output"
