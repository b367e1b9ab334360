"""
Observability module.
Contains logging, metrics, and tracing setup.
"""

from ccbuild.observability.logging import bind_context, setup_logging
from ccbuild.observability.metrics import (
    MetricsCollector,
    get_metrics,
    setup_metrics,
)
from ccbuild.observability.tracing import (
    create_span,
    get_tracer,
    setup_tracing,
    shutdown_tracing,
)

__all__ = [
    "setup_logging",
    "bind_context",
    "setup_metrics",
    "get_metrics",
    "MetricsCollector",
    "setup_tracing",
    "get_tracer",
    "create_span",
    "shutdown_tracing",
]
