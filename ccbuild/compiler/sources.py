"""
Compiler input sets: source globs, externs and stub files.

Globs are handed to the compiler as-is; entries starting with ``!``
exclude matches.
"""

import re
from dataclasses import dataclass, field

from ccbuild.types.compile import CompileOptions

RUNTIME_SOURCES = [
    "3p/3p.js",
    # Ads config files.
    "ads/_*.js",
    "ads/alp/**/*.js",
    "ads/google/**/*.js",
    "ads/inabox/**/*.js",
    # A4A has these cross extension deps.
    "extensions/amp-ad-network*/**/*-config.js",
    "extensions/amp-ad/**/*.js",
    "extensions/amp-a4a/**/*.js",
    # crypto.js and visibility.js
    "extensions/amp-analytics/**/*.js",
    # WebAnimationService
    "extensions/amp-animation/**/*.js",
    # amp-bind in the web worker
    "extensions/amp-bind/**/*.js",
    # Form impl used by other extensions
    "extensions/amp-form/**/*.js",
    # AccessService
    "extensions/amp-access/**/*.js",
    # AmpStoryVariableService
    "extensions/amp-story/**/*.js",
    # SubscriptionsService
    "extensions/amp-subscriptions/**/*.js",
    # UserNotificationManager
    "extensions/amp-user-notification/**/*.js",
    # AmpViewerIntegrationVariableService
    "extensions/amp-viewer-integration/**/*.js",
    "src/*.js",
    "src/*/**/*.js",
    "!src/inabox*/**/*.js",
    "!third_party/babel/custom-babel-helpers.js",
    # Not part of the runtime/extension binaries.
    "!extensions/amp-access/0.1/amp-login-done.js",
    "builtins/**.js",
    "third_party/caja/html-sanitizer.js",
    "third_party/closure-library/sha384-generated.js",
    "third_party/css-escape/css-escape.js",
    "third_party/mustache/**/*.js",
    "third_party/timeagojs/**/*.js",
    "third_party/vega/**/*.js",
    "third_party/d3/**/*.js",
    "third_party/subscriptions-project/*.js",
    "third_party/webcomponentsjs/ShadowCSS.js",
    "third_party/rrule/rrule.js",
    "third_party/react-dates/bundle.js",
    "node_modules/promise-pjs/promise.js",
    "node_modules/web-animations-js/web-animations.install.js",
    "node_modules/web-activities/activity-ports.js",
    # Duplicates code one level below and confuses the compiler.
    "!node_modules/core-js/modules/library/**.js",
    # Tests
    "!**_test.js",
    "!**/test-*.js",
    "!**/*.extern.js",
]

DEFAULT_EXTERNS = [
    "build-system/amp.extern.js",
    "third_party/closure-compiler/externs/intersection_observer.js",
    "third_party/closure-compiler/externs/performance_observer.js",
    "third_party/closure-compiler/externs/shadow_dom.js",
    "third_party/closure-compiler/externs/streams.js",
    "third_party/closure-compiler/externs/web_animations.js",
    "third_party/moment/moment.extern.js",
    "third_party/react-externs/externs.js",
]

THIRD_PARTY_DIRECTORIES = ["3p/**/*.js", "ads/**/*.js"]

_LAST_PATH_SEGMENT = re.compile(r"/[^/]+\.js$")


@dataclass
class SourceSet:
    """Globs for one compilation plus the stub files it relies on."""

    globs: list[str]
    unneeded_files: list[str] = field(default_factory=list)


def build_generated_sources(build_dir: str = "build") -> list[str]:
    """Globs for generated files under the build directory. Should be sparse."""
    return [
        f"{build_dir}/css.js",
        f"{build_dir}/*.css.js",
        f"{build_dir}/fake-module/**/*.js",
        f"{build_dir}/patched-module/**/*.js",
        f"{build_dir}/experiments/**/*.js",
        f"{build_dir}/patched-module/document-register-element/build/"
        "document-register-element.node.js",
    ]


def extension_glob(entry_module: str) -> str | None:
    """
    Glob covering an extension's own directory.

    Only the entry's extension is added instead of globbing every
    extension, which keeps builds fast.

    Returns:
        ``<extension dir>/**/*.js`` or None for non-extension entries.
    """
    if "extensions/" not in entry_module:
        return None
    return _LAST_PATH_SEGMENT.sub("/**/*.js", entry_module)


def build_sources(
    entry_modules: list[str],
    options: CompileOptions,
    build_dir: str = "build",
) -> SourceSet:
    """
    Assemble the input globs for a compilation.

    Args:
        entry_modules: Entry point files, first one is the main entry.
        options: Per-target compile options.
        build_dir: Build output root.

    Returns:
        SourceSet with the ordered globs and stub files to create.
    """
    globs = [*RUNTIME_SOURCES, *build_generated_sources(build_dir)]
    unneeded_files = [f"{build_dir}/fake-module/third_party/babel/custom-babel-helpers.js"]

    for entry in entry_modules:
        path = extension_glob(entry)
        if path is not None:
            globs.append(path)

    globs.extend(options.extra_globs)

    if options.include_3p_directories:
        globs.extend(THIRD_PARTY_DIRECTORIES)

    # Polyfills are delivered once, by the main binary.
    if options.include_polyfills:
        globs.extend([
            f"!{build_dir}/fake-module/src/polyfills.js",
            f"!{build_dir}/fake-module/src/polyfills/**/*.js",
        ])
    else:
        globs.append("!src/polyfills.js")
        unneeded_files.append(f"{build_dir}/fake-module/src/polyfills.js")

    return SourceSet(globs=globs, unneeded_files=unneeded_files)


def build_externs(options: CompileOptions) -> list[str]:
    """Default externs followed by any target-specific ones."""
    return [*DEFAULT_EXTERNS, *options.externs]
