"""
Pytest configuration and shared fixtures.
"""

import asyncio
import logging
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner
from prometheus_client import CollectorRegistry

import ccbuild.compiler.runner as compiler_runner
from ccbuild.compiler import set_compile_queue
from ccbuild.config import Settings, get_settings
from ccbuild.constants import FailurePolicy
from ccbuild.errors import JobFailure
from ccbuild.observability.metrics import MetricsCollector
from ccbuild.queue import BoundedTaskQueue

REGISTER_ELEMENT_SOURCE = (
    "function installCustomElements(global) {}\n"
    "installCustomElements(global);\n"
    "module.exports = installCustomElements;\n"
)

COMPILED_OUTPUT = (
    "/**\n"
    " * @license\n"
    " * Copyright 2015 The AMP HTML Authors. All Rights Reserved.\n"
    " *\n"
    " * Licensed under the Apache License, Version 2.0 (the \"License\");\n"
    " */\n"
    "(function(){var v='$internalRuntimeVersion$',t='$internalRuntimeToken$';})();\n"
)


@pytest.fixture(autouse=True)
def isolate_global_state() -> Generator[None]:
    """Reset the shared compile queue and root log handlers around each test."""
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level

    set_compile_queue(None)
    yield
    set_compile_queue(None)

    root_logger.handlers = handlers
    root_logger.setLevel(level)


@pytest.fixture
def metrics() -> MetricsCollector:
    """Metrics collector on a private registry."""
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def fatal_calls() -> list[JobFailure]:
    """Failures handed to the queue's fatal handler."""
    return []


@pytest.fixture
def make_queue(
    metrics: MetricsCollector,
    fatal_calls: list[JobFailure],
) -> Callable[..., BoundedTaskQueue]:
    """Factory for queues that record fatal failures instead of exiting."""

    def factory(
        max_concurrency: int,
        failure_policy: FailurePolicy = FailurePolicy.ABORT,
    ) -> BoundedTaskQueue:
        return BoundedTaskQueue(
            max_concurrency,
            failure_policy=failure_policy,
            on_fatal=fatal_calls.append,
            metrics=metrics,
            name="test",
        )

    return factory


@pytest.fixture
def node_modules(tmp_path: Path) -> Path:
    """A node_modules directory holding document-register-element."""
    root = tmp_path / "node_modules"
    module = root / "document-register-element" / "build" / "document-register-element.node.js"
    module.parent.mkdir(parents=True)
    module.write_text(REGISTER_ELEMENT_SOURCE)
    return root


@pytest.fixture
def test_settings(tmp_path: Path, node_modules: Path) -> Settings:
    """Create test settings rooted in a temporary directory."""
    return Settings(
        build_dir=str(tmp_path / "build"),
        node_modules_dir=str(node_modules),
        internal_runtime_version="1234567890",
        internal_runtime_token="prod-token",
        log_level="DEBUG",
        log_format="console",
    )


@pytest.fixture
def settings_env(
    tmp_path: Path,
    node_modules: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> Generator[Callable[..., Settings]]:
    """Point the cached application settings at a temporary directory."""

    def apply(**overrides: Any) -> Settings:
        values = {
            "BUILD_DIR": str(tmp_path / "build"),
            "NODE_MODULES_DIR": str(node_modules),
            "INTERNAL_RUNTIME_VERSION": "1234567890",
            "LOG_FORMAT": "console",
            **{key.upper(): str(value) for key, value in overrides.items()},
        }
        for key, value in values.items():
            monkeypatch.setenv(key, value)
        get_settings.cache_clear()
        return get_settings()

    yield apply
    get_settings.cache_clear()


class FakeProcess:
    """Stands in for the compiler subprocess."""

    def __init__(self, compiler: "FakeCompiler", command: list[str]):
        self._compiler = compiler
        self._command = command
        self.returncode: int | None = None

    async def communicate(self) -> tuple[bytes, bytes]:
        compiler = self._compiler
        compiler.running += 1
        compiler.peak = max(compiler.peak, compiler.running)
        try:
            await asyncio.sleep(compiler.delay)
        finally:
            compiler.running -= 1

        args = {}
        for arg in self._command:
            if arg.startswith("--") and "=" in arg:
                name, value = arg[2:].split("=", 1)
                args[name] = value

        output_file = args["js_output_file"]
        if any(marker in output_file for marker in compiler.failing):
            self.returncode = 1
            return b"", f"{output_file}:1: ERROR - Parse error\n1 error(s), 0 warning(s)\n".encode()

        Path(output_file).parent.mkdir(parents=True, exist_ok=True)
        Path(output_file).write_text(compiler.output)
        Path(args["create_source_map"]).write_text('{"version":3,"sources":[]}')
        self.returncode = 0
        return b"", compiler.stderr


class FakeCompiler:
    """
    Replacement for asyncio.create_subprocess_exec in the compiler runner.

    Records commands, tracks concurrent invocations, writes output files and
    fails any invocation whose output file contains a marker in ``failing``.
    """

    def __init__(self) -> None:
        self.commands: list[list[str]] = []
        self.failing: set[str] = set()
        self.output = COMPILED_OUTPUT
        self.stderr = b""
        self.delay = 0.0
        self.running = 0
        self.peak = 0

    async def __call__(self, *command: str, **kwargs: Any) -> FakeProcess:
        self.commands.append(list(command))
        return FakeProcess(self, list(command))


@pytest.fixture
def fake_compiler(monkeypatch: pytest.MonkeyPatch) -> FakeCompiler:
    """Intercept compiler subprocesses."""
    compiler = FakeCompiler()
    monkeypatch.setattr(compiler_runner.asyncio, "create_subprocess_exec", compiler)
    return compiler


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click test runner."""
    return CliRunner()
