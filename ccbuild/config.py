"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with sensible defaults.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from ccbuild.constants import FailurePolicy


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Queue
    max_parallel_compilations: int = 4
    failure_policy: FailurePolicy = FailurePolicy.ABORT

    # Compiler
    java_bin: str = "java"
    compiler_path: str = "build-system/runner/dist/runner.jar"
    tiered_compilation: bool = True
    continue_with_warnings: bool = False
    build_dir: str = "build"
    node_modules_dir: str = "node_modules"

    # Runtime version stamping
    internal_runtime_version: str = "011502819823157"
    internal_runtime_token: str = "prod-token"

    # Source maps and licenses
    source_map_dev_base: str = "http://localhost:8000/"
    source_map_prod_base: str = "https://raw.githubusercontent.com/ampproject/amphtml/{version}/"
    license_url: str = "https://github.com/ampproject/amphtml/blob/master/LICENSE"

    # Build flags
    prod_build: bool = False
    typecheck_only: bool = False
    pseudo_names: bool = False
    fortesting: bool = False

    # CI: print a progress dot after each compilation
    travis: bool = False

    # Observability
    otel_exporter_otlp_endpoint: str | None = None
    otel_service_name: str = "ccbuild"
    metrics_textfile: str | None = None
    log_level: str = "INFO"
    log_format: str = "console"  # json or console


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
