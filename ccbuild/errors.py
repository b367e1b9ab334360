"""
Error types and operator-facing error reporting.

A failed unit of work is reported once, in a readable form, before the
process exits. Compiler errors get the lengthy java invocation stripped and
their source excerpts and severity keywords highlighted.
"""

from __future__ import annotations

import re
import sys
from typing import NoReturn

from rich.console import Console
from rich.syntax import Syntax
from rich.text import Text

from ccbuild.constants import EXIT_BUILD_FAILURE
from ccbuild.output import err_console

# Matches "Command failed: java -jar ... --js_output_file="<file>"\n"
_JAVA_INVOCATION_LINE = re.compile(r'Command failed:.*--js_output_file=".*?"\n', re.DOTALL)


class CcbuildError(Exception):
    """Base class for all ccbuild errors."""


class ConfigurationError(CcbuildError):
    """The build is configured in a way that must not be compiled."""


class CompilationError(CcbuildError):
    """The compiler exited with a non-zero status."""

    def __init__(self, output_filename: str, message: str) -> None:
        super().__init__(message)
        self.output_filename = output_filename
        self.message = message


class JobFailure(CcbuildError):
    """
    A unit of work submitted to a queue raised.

    Attributes:
        job_name: Display name the job was submitted under.
        cause: The exception raised by the unit of work.
    """

    def __init__(self, job_name: str, cause: BaseException) -> None:
        super().__init__(f"{job_name}: {cause}")
        self.job_name = job_name
        self.cause = cause


class QueueAbortedError(CcbuildError):
    """The queue stopped admitting work after a fatal job failure."""

    def __init__(self, failure: JobFailure | None = None) -> None:
        reason = f" after failure of {failure.job_name}" if failure else ""
        super().__init__(f"Queue aborted{reason}")
        self.failure = failure


def format_compiler_error(message: str) -> Text:
    """
    Format a compiler error message into a more readable form.

    Drops the java invocation line, syntax highlights the quoted source and
    highlights WARNING / ERROR.

    Args:
        message: Raw error text captured from the compiler.

    Returns:
        Styled text for a rich console.
    """
    message = _JAVA_INVOCATION_LINE.sub("", message)
    syntax = Syntax(message, "javascript", background_color="default", word_wrap=True)
    text = syntax.highlight(message)
    text.highlight_words(["WARNING"], style="yellow")
    text.highlight_words(["ERROR"], style="red")
    return text


def render_failure(failure: JobFailure) -> Text:
    """Render a job failure as styled text."""
    cause = failure.cause
    if isinstance(cause, CompilationError):
        return Text.assemble(
            (f"Compiler error for {cause.output_filename}:", "red"),
            "\n",
            format_compiler_error(cause.message),
        )
    return Text.assemble(("Compilation error:", "red"), f" {cause}")


def report_failure(failure: JobFailure, console: Console | None = None) -> None:
    """Print a single formatted failure report."""
    (console or err_console).print(render_failure(failure), highlight=False)


def report_fatal(failure: JobFailure) -> NoReturn:
    """
    Report a job failure and terminate the process.

    Args:
        failure: The failure that aborted the queue.
    """
    report_failure(failure)
    sys.exit(EXIT_BUILD_FAILURE)
