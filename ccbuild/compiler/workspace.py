"""
Build directory preparation.

Creates the directories the compiler writes into and the patched or fake
modules it reads from.
"""

import logging
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)

REGISTER_ELEMENT_PATH = "document-register-element/build/document-register-element.node.js"
REGISTER_ELEMENT_INSTALL = "installCustomElements(global);"
REGISTER_ELEMENT_EXPORT = "module.exports = installCustomElements;"

STUB_MODULE = "// Not needed in closure compiler\nexport function deadCode() {}"


def cleanup_build_dir(build_dir: str | Path = "build") -> None:
    """
    Reset generated modules and recreate the build layout.

    The compiler output directory (``cc``) is kept.
    """
    root = Path(build_dir)
    (root / "cc").mkdir(parents=True, exist_ok=True)
    shutil.rmtree(root / "fake-module", ignore_errors=True)
    shutil.rmtree(root / "patched-module", ignore_errors=True)
    (root / "patched-module" / "document-register-element" / "build").mkdir(parents=True, exist_ok=True)
    (root / "fake-module" / "third_party" / "babel").mkdir(parents=True, exist_ok=True)
    (root / "fake-module" / "src" / "polyfills").mkdir(parents=True, exist_ok=True)


def patch_register_element(
    build_dir: str | Path = "build",
    node_modules: str | Path = "node_modules",
    fortesting: bool = False,
) -> Path:
    """
    Write an exporting copy of document-register-element.

    Without an export the compiler emits no goog.provide for this module
    and compilation fails. The copy is only written once per clean build.

    Args:
        build_dir: Build output root.
        node_modules: Directory holding the installed package.
        fortesting: Install against ``self`` instead of dropping the
            install side effect.

    Returns:
        Path of the patched module.
    """
    patched = Path(build_dir) / "patched-module" / REGISTER_ELEMENT_PATH
    if patched.exists():
        return patched

    source = (Path(node_modules) / REGISTER_ELEMENT_PATH).read_text(encoding="utf-8")
    if fortesting:
        # No CommonJS wrapper, so `global` is not defined
        source = source.replace(REGISTER_ELEMENT_INSTALL, "installCustomElements(self);", 1)
    else:
        # Drop the side effect so installation can be controlled and tree shaken
        source = source.replace(REGISTER_ELEMENT_INSTALL, "", 1)
    # CommonJS interop does not generate a `default` property
    source = source.replace(REGISTER_ELEMENT_EXPORT, "exports.default = installCustomElements;", 1)

    patched.parent.mkdir(parents=True, exist_ok=True)
    patched.write_text(source, encoding="utf-8")
    logger.debug("Patched document-register-element", extra={"path": str(patched)})
    return patched


def write_stub_modules(paths: list[str]) -> list[Path]:
    """
    Create dead-code stand-ins for modules the bundle must not include.

    Existing files are left alone.

    Returns:
        The stubs that were created.
    """
    created = []
    for name in paths:
        path = Path(name)
        if path.exists():
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(STUB_MODULE, encoding="utf-8")
        created.append(path)
    return created


def remove_stale_output(intermediate: str | Path) -> None:
    """Delete a previous intermediate output so a failed run leaves none."""
    Path(intermediate).unlink(missing_ok=True)
