"""
Closure Compiler bundles.

``closure_compile()`` is the entry point for build scripts: every call is
rate-limited through one shared bounded task queue so at most
``max_parallel_compilations`` compiler processes run at once.
"""

import asyncio
import sys
from pathlib import Path

from ccbuild.compiler.runner import build_command, compile_bundle, run_compiler
from ccbuild.config import get_settings
from ccbuild.observability.logging import bind_context
from ccbuild.queue import BoundedTaskQueue
from ccbuild.types.compile import BuildFlags, BuildTarget, CompileOptions

# Shared queue instance
_queue: BoundedTaskQueue | None = None


def get_compile_queue() -> BoundedTaskQueue:
    """
    Get the shared compile queue, creating it from settings on first use.

    Returns:
        BoundedTaskQueue: The queue all closure_compile() calls go through.
    """
    global _queue
    if _queue is None:
        settings = get_settings()
        _queue = BoundedTaskQueue(
            settings.max_parallel_compilations,
            failure_policy=settings.failure_policy,
            name="closure",
        )
    return _queue


def set_compile_queue(queue: BoundedTaskQueue | None) -> None:
    """Replace the shared compile queue. None resets it to the default."""
    global _queue
    _queue = queue


def closure_compile(
    entry: str | list[str],
    output_dir: str,
    output_filename: str,
    options: CompileOptions | None = None,
    build_flags: BuildFlags | None = None,
) -> asyncio.Future:
    """
    Queue a compilation.

    Args:
        entry: Entry module or modules; the first names the intermediate output.
        output_dir: Directory the bundle and its map are written to.
        output_filename: Bundle file name.
        options: Per-target compile options.
        build_flags: Build-wide switches. Defaults to settings.

    Returns:
        Future resolved with the bundle path (None when only type checking).
    """
    target = BuildTarget(
        entry=entry,
        output_dir=output_dir,
        output_filename=output_filename,
        options=options or CompileOptions(),
    )
    return submit_target(target, build_flags)


def submit_target(target: BuildTarget, build_flags: BuildFlags | None = None) -> asyncio.Future:
    """Queue a compilation of an already validated target."""
    settings = get_settings()

    async def compile_target() -> Path | None:
        # Runs in its own task, so the binding stays with this job
        bind_context(output=target.output_filename)
        result = await compile_bundle(target, build_flags, settings)
        if settings.travis:
            # Keep CI from timing out on long silent builds
            sys.stdout.write(".")
            sys.stdout.flush()
        return result

    return get_compile_queue().submit(compile_target, name=target.output_filename)


__all__ = [
    "build_command",
    "closure_compile",
    "compile_bundle",
    "get_compile_queue",
    "run_compiler",
    "set_compile_queue",
    "submit_target",
]
