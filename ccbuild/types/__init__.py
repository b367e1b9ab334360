"""
Type definitions for ccbuild.
Contains input/output type definitions, grouped by module.
"""

from ccbuild.types.compile import (
    BuildFlags,
    BuildManifest,
    BuildTarget,
    CompileOptions,
)
from ccbuild.types.job import (
    QueuedJob,
    QueueStats,
    UnitOfWork,
)

__all__ = [
    # Compile types
    "BuildFlags",
    "BuildManifest",
    "BuildTarget",
    "CompileOptions",
    # Job types
    "QueuedJob",
    "QueueStats",
    "UnitOfWork",
]
