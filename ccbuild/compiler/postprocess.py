"""
Compiled output post-processing.

The intermediate compiler output is renamed to the bundle name, stamped with
the runtime version and token, has its license headers shortened, and is
written to the output directory together with its relocated source map.
"""

import logging
import re
import shutil
from pathlib import Path

from ccbuild.constants import RUNTIME_TOKEN_TOKEN, RUNTIME_VERSION_TOKEN

logger = logging.getLogger(__name__)

# Block comments carrying the full Apache 2.0 license text
_LICENSE_BLOCK = re.compile(
    r"/\*(?:(?!\*/).)*?Licensed under the Apache License, Version 2\.0(?:(?!\*/).)*\*/",
    re.DOTALL,
)


def substitute_tokens(source: str, version: str, token: str) -> str:
    """Replace the runtime version and token placeholders."""
    return source.replace(RUNTIME_VERSION_TOKEN, version).replace(RUNTIME_TOKEN_TOKEN, token)


def shorten_license(source: str, license_url: str) -> str:
    """
    Replace full license headers with a one-line pointer.

    The compiler keeps every ``@license`` comment, so bundles built from many
    files would otherwise repeat the same text.
    """
    return _LICENSE_BLOCK.sub(f"/* {license_url} */", source)


def relocate_source_map(intermediate: str | Path, output_dir: str | Path, output_filename: str) -> Path:
    """
    Copy ``<intermediate>.map`` next to the bundle as ``<output>.map``.

    Returns:
        Path of the relocated map.
    """
    target = Path(output_dir) / f"{output_filename}.map"
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(f"{intermediate}.map", target)
    return target


def write_output(
    intermediate: str | Path,
    output_dir: str | Path,
    output_filename: str,
    *,
    version: str,
    token: str,
    license_url: str,
) -> Path:
    """
    Post-process the intermediate output into the final bundle.

    Args:
        intermediate: Compiler output file.
        output_dir: Destination directory.
        output_filename: Bundle file name.
        version: Runtime version to stamp in.
        token: Runtime token to stamp in.
        license_url: Target of shortened license headers.

    Returns:
        Path of the written bundle.
    """
    source = Path(intermediate).read_text(encoding="utf-8")
    source = substitute_tokens(source, version, token)
    source = shorten_license(source, license_url)

    target = Path(output_dir) / output_filename
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(source, encoding="utf-8")

    relocate_source_map(intermediate, output_dir, output_filename)

    logger.info(
        "Bundle written",
        extra={"output": str(target), "bytes": len(source.encode("utf-8"))},
    )
    return target
