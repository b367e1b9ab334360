"""
Compiler flag table for a single Closure Compiler invocation.
"""

from typing import Any

from ccbuild.config import Settings
from ccbuild.constants import (
    COMPILER_OUTPUT_PLACEHOLDER,
    DEFAULT_COMPILATION_LEVEL,
    DEFAULT_OUTPUT_WRAPPER,
    WRAPPER_CONTENTS_PLACEHOLDER,
)
from ccbuild.types.compile import BuildFlags, CompileOptions

MODULE_ROOTS = ["node_modules/", "patched-module/", "fake-module/"]

HIDE_WARNINGS_FOR = [
    "third_party/caja/",
    "third_party/closure-library/sha384-generated.js",
    "third_party/subscriptions-project/",
    "third_party/d3/",
    "third_party/mustache/",
    "third_party/vega/",
    "third_party/webcomponentsjs/",
    "third_party/rrule/",
    "third_party/react-dates/",
    "node_modules/",
    # `(0, win.eval)` suspicious code warning cannot be suppressed inline
    "3p/environment.js",
    # Generated code.
    "extensions/amp-access/0.1/access-expr-impl.js",
]

TYPECHECK_ERRORS = [
    "checkTypes",
    "accessControls",
    "const",
    "constantProperty",
    "globalThis",
]

CONFORMANCE_CONFIG = "build-system/conformance-config.textproto"


def intermediate_filename(entry_module: str, build_dir: str = "build") -> str:
    """Per-entry compiler output path inside the build directory."""
    flattened = entry_module.replace("/", "_").removeprefix(".")
    return f"{build_dir}/cc/{flattened}"


def build_output_wrapper(output_filename: str, wrapper: str | None = None) -> str:
    """
    Output wrapper with the source map comment appended.

    Args:
        output_filename: Final bundle name; the map is ``<name>.map``.
        wrapper: Template using ``<%= contents %>`` for the compiled code.
    """
    if wrapper:
        wrapper = wrapper.replace(WRAPPER_CONTENTS_PLACEHOLDER, COMPILER_OUTPUT_PLACEHOLDER)
    else:
        wrapper = DEFAULT_OUTPUT_WRAPPER
    return f"{wrapper}\n//# sourceMappingURL={output_filename}.map\n"


def source_map_base(settings: Settings, prod_build: bool) -> str:
    """Where source maps fetch original files from."""
    if prod_build:
        # Point at the tagged sources of this runtime version
        return settings.source_map_prod_base.format(version=settings.internal_runtime_version)
    return settings.source_map_dev_base


def build_compiler_flags(
    entry_modules: list[str],
    output_filename: str,
    externs: list[str],
    options: CompileOptions,
    build_flags: BuildFlags,
    settings: Settings,
) -> dict[str, Any]:
    """
    Build the compiler flag table.

    Args:
        entry_modules: Entry point files.
        output_filename: Final bundle name.
        externs: Extern files.
        options: Per-target compile options.
        build_flags: Build-wide switches.
        settings: Application settings.

    Returns:
        Mapping of flag name to a scalar or a list of values.
    """
    intermediate = intermediate_filename(entry_modules[0], settings.build_dir)
    compilation_level = options.compilation_level or DEFAULT_COMPILATION_LEVEL

    flags: dict[str, Any] = {
        "compilation_level": str(compilation_level),
        "assume_function_wrapper": True,
        "language_in": "ECMASCRIPT6",
        "language_out": "ECMASCRIPT5",
        # Polyfills come from our own polyfills.js files.
        "rewrite_polyfills": False,
        "externs": list(externs),
        "js_module_root": [
            root if root == "node_modules/" else f"{settings.build_dir}/{root}"
            for root in MODULE_ROOTS
        ],
        "entry_point": list(entry_modules),
        "process_common_js_modules": True,
        # Strip every input not explicitly required.
        "only_closure_dependencies": True,
        "output_wrapper": build_output_wrapper(output_filename, options.wrapper),
        "create_source_map": f"{intermediate}.map",
        "source_map_location_mapping": "|" + source_map_base(settings, build_flags.prod_build),
        "warning_level": "DEFAULT",
        # Defines such as FORTESTING are passed through unknown.
        "jscomp_off": ["unknownDefines"],
        "define": [],
        "hide_warnings_for": [*HIDE_WARNINGS_FOR, f"{settings.build_dir}/patched-module/"],
        "jscomp_error": [],
    }

    if build_flags.typecheck_only or options.check_types:
        # Keep the compilation level; whitespace-only skips strict checks.
        flags["define"].append("TYPECHECK_ONLY=true")
        flags["jscomp_error"].extend(TYPECHECK_ERRORS)
        flags["conformance_configs"] = CONFORMANCE_CONFIG
    if build_flags.pseudo_names:
        flags["define"].append("PSEUDO_NAMES=true")
    if build_flags.fortesting:
        flags["define"].append("FORTESTING=true")

    if not flags["define"]:
        del flags["define"]

    return flags


def to_command_line(flags: dict[str, Any]) -> list[str]:
    """
    Render a flag table as compiler arguments.

    Lists repeat the flag once per value, True renders as a bare flag.
    """
    args: list[str] = []
    for name, value in flags.items():
        values = value if isinstance(value, list) else [value]
        for item in values:
            if item is True:
                args.append(f"--{name}")
            elif item is False:
                args.append(f"--{name}=false")
            else:
                args.append(f"--{name}={item}")
    return args
