"""
Compilation request types.
"""

from pydantic import BaseModel, Field, field_validator

from ccbuild.constants import CompilationLevel


class CompileOptions(BaseModel):
    """
    Per-target knobs for a single compiler invocation.
    """

    wrapper: str | None = None
    extra_globs: list[str] = Field(default_factory=list)
    include_3p_directories: bool = False
    include_polyfills: bool = False
    externs: list[str] = Field(default_factory=list)
    compilation_level: CompilationLevel | None = None
    check_types: bool = False
    prevent_remove_and_make_dir: bool = False


class BuildFlags(BaseModel):
    """
    Build-wide switches, normally taken from settings or the command line.
    """

    prod_build: bool = False
    typecheck_only: bool = False
    pseudo_names: bool = False
    fortesting: bool = False


class BuildTarget(BaseModel):
    """
    One bundle to produce: entry module(s) in, a single output file out.
    """

    entry: list[str]
    output_dir: str
    output_filename: str
    options: CompileOptions = Field(default_factory=CompileOptions)

    @field_validator("entry", mode="before")
    @classmethod
    def _coerce_entry(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("entry")
    @classmethod
    def _require_entry(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("at least one entry module is required")
        return value

    @property
    def main_entry(self) -> str:
        """The first entry module; names the intermediate output."""
        return self.entry[0]


class BuildManifest(BaseModel):
    """
    A batch of targets compiled through one queue.
    """

    targets: list[BuildTarget]
