"""ccbuild command line.

Compiles one target (``ccbuild compile``) or a manifest of targets
(``ccbuild build``) through a bounded compile queue.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click
from pydantic import ValidationError
from rich.markup import escape

from ccbuild import __version__
from ccbuild.compiler import get_compile_queue, set_compile_queue, submit_target
from ccbuild.compiler.workspace import cleanup_build_dir
from ccbuild.config import get_settings
from ccbuild.constants import (
    EXIT_BUILD_FAILURE,
    EXIT_SUCCESS,
    CompilationLevel,
    FailurePolicy,
)
from ccbuild.errors import report_failure
from ccbuild.observability.logging import setup_logging
from ccbuild.observability.metrics import get_metrics
from ccbuild.observability.tracing import setup_tracing, shutdown_tracing
from ccbuild.output import error, success
from ccbuild.queue import BoundedTaskQueue
from ccbuild.types.compile import BuildFlags, BuildManifest, BuildTarget, CompileOptions


def build_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by every command that runs the compiler."""
    options = [
        click.option("--type", "build_type", default=None, help="Any value marks a production build."),
        click.option("--typecheck-only", is_flag=True, help="Type check only, write no bundles."),
        click.option("--pseudo-names", is_flag=True, help="Compile with PSEUDO_NAMES=true."),
        click.option("--fortesting", is_flag=True, help="Compile with FORTESTING=true."),
        click.option(
            "--max-parallel",
            type=click.IntRange(min=1),
            default=None,
            help="Concurrent compiler processes [default: from settings].",
        ),
        click.option(
            "--failure-policy",
            type=click.Choice([policy.value for policy in FailurePolicy]),
            default=None,
            help="abort on the first failure, or drain the queue and report all.",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _build_flags(
    build_type: str | None,
    typecheck_only: bool,
    pseudo_names: bool,
    fortesting: bool,
) -> BuildFlags:
    settings = get_settings()
    return BuildFlags(
        prod_build=bool(build_type) or settings.prod_build,
        typecheck_only=typecheck_only or settings.typecheck_only,
        pseudo_names=pseudo_names or settings.pseudo_names,
        fortesting=fortesting or settings.fortesting,
    )


def _share_build_dir(target: BuildTarget) -> BuildTarget:
    """Copy of target that leaves the already prepared build directory alone."""
    options = target.options.model_copy(update={"prevent_remove_and_make_dir": True})
    return target.model_copy(update={"options": options})


async def run_targets(targets: list[BuildTarget], build_flags: BuildFlags) -> list[asyncio.Future]:
    """
    Submit every target to the shared compile queue and wait for it to drain.

    The build directory is reset once up front; compilers running in
    parallel read from it, so no job may reset it again.

    Returns:
        One future per target, in submission order.
    """
    cleanup_build_dir(get_settings().build_dir)

    queue = get_compile_queue()
    futures = [submit_target(_share_build_dir(target), build_flags) for target in targets]
    await queue.join()
    return futures


def execute(
    targets: list[BuildTarget],
    build_flags: BuildFlags,
    max_parallel: int | None,
    failure_policy: str | None,
) -> int:
    """
    Compile targets and report the outcome.

    Under the abort policy the first failure ends the process from inside
    the queue; under drain every failure is reported here.

    Returns:
        Process exit code.
    """
    settings = get_settings()
    set_compile_queue(
        BoundedTaskQueue(
            max_parallel or settings.max_parallel_compilations,
            failure_policy=FailurePolicy(failure_policy or settings.failure_policy),
            name="closure",
        )
    )

    if settings.otel_exporter_otlp_endpoint:
        setup_tracing()

    try:
        futures = asyncio.run(run_targets(targets, build_flags))
    finally:
        if settings.otel_exporter_otlp_endpoint:
            shutdown_tracing()
        if settings.metrics_textfile:
            get_metrics().write_textfile(settings.metrics_textfile)

    queue = get_compile_queue()
    set_compile_queue(None)

    for target, future in zip(targets, futures, strict=True):
        if future.done() and not future.cancelled() and future.exception() is None:
            bundle = future.result()
            success(f"Compiled {escape(str(bundle or target.output_filename))}")

    for failure in queue.failures:
        report_failure(failure)

    if queue.failures:
        error(f"{len(queue.failures)} of {len(targets)} compilations failed")
        return EXIT_BUILD_FAILURE
    return EXIT_SUCCESS


@click.group()
@click.version_option(version=__version__, prog_name="ccbuild")
@click.option("--log-level", default=None, help="Log level [default: from settings].")
def main(log_level: str | None) -> None:
    """Production bundles with Closure Compiler."""
    setup_logging(log_level)


@main.command("compile")
@click.argument("entries", nargs=-1, required=True)
@click.option("-o", "--output-dir", required=True, type=click.Path(), help="Bundle output directory.")
@click.option("-n", "--output-filename", required=True, help="Bundle file name.")
@click.option("--wrapper", default=None, help="Output wrapper using <%= contents %>.")
@click.option("--extra-glob", "extra_globs", multiple=True, help="Additional input glob.")
@click.option("--extern", "externs", multiple=True, help="Additional externs file.")
@click.option("--include-polyfills", is_flag=True, help="Bundle the polyfills.")
@click.option("--include-3p", "include_3p", is_flag=True, help="Add the 3p and ads directories.")
@click.option(
    "--compilation-level",
    type=click.Choice([level.value for level in CompilationLevel]),
    default=None,
    help="Closure compilation level [default: SIMPLE_OPTIMIZATIONS].",
)
@click.option("--check-types", is_flag=True, help="Enable strict type checks for this target.")
@build_options
def compile_cmd(
    entries: tuple[str, ...],
    output_dir: str,
    output_filename: str,
    wrapper: str | None,
    extra_globs: tuple[str, ...],
    externs: tuple[str, ...],
    include_polyfills: bool,
    include_3p: bool,
    compilation_level: str | None,
    check_types: bool,
    build_type: str | None,
    typecheck_only: bool,
    pseudo_names: bool,
    fortesting: bool,
    max_parallel: int | None,
    failure_policy: str | None,
) -> None:
    """Compile ENTRIES into a single bundle.

    Examples:

        ccbuild compile src/amp.js -o dist -n v0.js --include-polyfills

        ccbuild compile extensions/amp-bind/0.1/amp-bind.js -o dist/v0 -n amp-bind-0.1.js
    """
    target = BuildTarget(
        entry=list(entries),
        output_dir=output_dir,
        output_filename=output_filename,
        options=CompileOptions(
            wrapper=wrapper,
            extra_globs=list(extra_globs),
            externs=list(externs),
            include_polyfills=include_polyfills,
            include_3p_directories=include_3p,
            compilation_level=compilation_level,
            check_types=check_types,
        ),
    )
    flags = _build_flags(build_type, typecheck_only, pseudo_names, fortesting)
    raise SystemExit(execute([target], flags, max_parallel, failure_policy))


@main.command("build")
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@build_options
def build_cmd(
    manifest: Path,
    build_type: str | None,
    typecheck_only: bool,
    pseudo_names: bool,
    fortesting: bool,
    max_parallel: int | None,
    failure_policy: str | None,
) -> None:
    """Compile every target listed in a JSON MANIFEST.

    The manifest holds {"targets": [{"entry": ..., "output_dir": ...,
    "output_filename": ..., "options": {...}}]}.
    """
    try:
        parsed = BuildManifest.model_validate_json(manifest.read_text(encoding="utf-8"))
    except ValidationError as e:
        error(f"Invalid manifest {escape(str(manifest))}:\n{escape(str(e))}")
        raise SystemExit(EXIT_BUILD_FAILURE) from None

    if not parsed.targets:
        error(f"No targets in {manifest}")
        raise SystemExit(EXIT_BUILD_FAILURE)

    flags = _build_flags(build_type, typecheck_only, pseudo_names, fortesting)
    raise SystemExit(execute(parsed.targets, flags, max_parallel, failure_policy))


if __name__ == "__main__":
    main()
