"""
Closure Compiler invocation.

Compiles AMP bundles with the closure compiler. This is intended only for
production use; development builds use a faster incremental transpiler.
"""

import asyncio
import logging
import time
from pathlib import Path

from ccbuild.compiler.flags import build_compiler_flags, intermediate_filename, to_command_line
from ccbuild.compiler.postprocess import write_output
from ccbuild.compiler.sources import build_externs, build_sources
from ccbuild.compiler.workspace import (
    cleanup_build_dir,
    patch_register_element,
    remove_stale_output,
    write_stub_modules,
)
from ccbuild.config import Settings, get_settings
from ccbuild.constants import SPAN_COMPILE, SPAN_POSTPROCESS
from ccbuild.errors import CompilationError, ConfigurationError
from ccbuild.observability.tracing import create_span
from ccbuild.types.compile import BuildFlags, BuildTarget

logger = logging.getLogger(__name__)


def build_command(
    target: BuildTarget,
    build_flags: BuildFlags,
    settings: Settings,
    globs: list[str],
) -> list[str]:
    """
    Full compiler command line for a target.

    ``--js_output_file`` is always the last argument.
    """
    flags = build_compiler_flags(
        entry_modules=target.entry,
        output_filename=target.output_filename,
        externs=build_externs(target.options),
        options=target.options,
        build_flags=build_flags,
        settings=settings,
    )

    command = [settings.java_bin]
    if settings.tiered_compilation:
        command.append("-XX:+TieredCompilation")
    command.extend(["-jar", settings.compiler_path])
    command.extend(to_command_line(flags))
    command.extend(f"--js={glob}" for glob in globs)
    command.append(f"--js_output_file={intermediate_filename(target.main_entry, settings.build_dir)}")
    return command


async def run_compiler(
    command: list[str],
    output_filename: str,
    continue_with_warnings: bool = False,
) -> str:
    """
    Run the compiler and wait for it to exit.

    Args:
        command: Command line from build_command().
        output_filename: Bundle name, used in error reports.
        continue_with_warnings: Accept diagnostics on a zero exit status.

    Returns:
        Whatever the compiler printed to stderr.

    Raises:
        CompilationError: On a non-zero exit status, or on any diagnostic
            output unless warnings are allowed.
    """
    process = await asyncio.create_subprocess_exec(
        *command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()
    diagnostics = stderr.decode("utf-8", errors="replace")

    if process.returncode != 0 or (diagnostics.strip() and not continue_with_warnings):
        *invocation, output_arg = command
        name, _, value = output_arg.partition("=")
        message = (
            f"Command failed: {' '.join(invocation)} {name}=\"{value}\"\n"
            f"{diagnostics}{stdout.decode('utf-8', errors='replace')}"
        )
        raise CompilationError(output_filename, message)

    if diagnostics.strip():
        logger.warning(
            "Compiler warnings",
            extra={"output": output_filename, "warnings": diagnostics.strip()},
        )
    return diagnostics


async def compile_bundle(
    target: BuildTarget,
    build_flags: BuildFlags | None = None,
    settings: Settings | None = None,
) -> Path | None:
    """
    Compile one target and write the post-processed bundle.

    Args:
        target: What to compile and where to write it.
        build_flags: Build-wide switches. Defaults to the settings' ones.
        settings: Application settings.

    Returns:
        Path of the written bundle, or None for type-check-only builds.

    Raises:
        ConfigurationError: If the runtime token is a development token.
        CompilationError: If the compiler fails.
    """
    settings = settings or get_settings()
    build_flags = build_flags or BuildFlags(
        prod_build=settings.prod_build,
        typecheck_only=settings.typecheck_only,
        pseudo_names=settings.pseudo_names,
        fortesting=settings.fortesting,
    )

    if "development" in settings.internal_runtime_token:
        raise ConfigurationError("Should compile with a prod token")

    intermediate = intermediate_filename(target.main_entry, settings.build_dir)
    if not target.options.prevent_remove_and_make_dir:
        cleanup_build_dir(settings.build_dir)
    patch_register_element(
        settings.build_dir,
        node_modules=settings.node_modules_dir,
        fortesting=build_flags.fortesting,
    )
    remove_stale_output(intermediate)

    sources = build_sources(target.entry, target.options, settings.build_dir)
    write_stub_modules(sources.unneeded_files)
    command = build_command(target, build_flags, settings, sources.globs)

    logger.info(
        "Compiling",
        extra={"entry": target.main_entry, "output": target.output_filename},
    )

    start_time = time.monotonic()
    with create_span(SPAN_COMPILE, entry=target.main_entry, output=target.output_filename):
        await run_compiler(command, target.output_filename, settings.continue_with_warnings)

    logger.info(
        "Compiled",
        extra={
            "output": target.output_filename,
            "duration": f"{time.monotonic() - start_time:.2f}s",
        },
    )

    # Type checking produces no bundle
    if build_flags.typecheck_only:
        return None

    with create_span(SPAN_POSTPROCESS, output=target.output_filename):
        return write_output(
            intermediate,
            target.output_dir,
            target.output_filename,
            version=settings.internal_runtime_version,
            token=settings.internal_runtime_token,
            license_url=settings.license_url,
        )
