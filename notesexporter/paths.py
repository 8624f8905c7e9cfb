"""Folder hierarchy reconstruction and collision-free file naming."""

import logging
from collections.abc import Iterable
from pathlib import Path

from .sanitize import FormatRules, sanitize

logger = logging.getLogger(__name__)


def ensure_path(root: Path, segments: Iterable[str], rules: FormatRules = FormatRules()) -> Path:
    """Create (or reuse) the nested folders for a note and return the deepest one.

    Each segment is sanitized first; segments that sanitize to nothing are
    skipped rather than becoming empty folder names. Existing folders are
    reused, so notes sharing a folder can call this concurrently.

    Args:
        root: Directory the hierarchy is rooted at (must exist)
        segments: Folder names, root first
        rules: Sanitizer rules for the selected output format

    Returns:
        Path of the innermost folder
    """
    current = root
    for segment in segments:
        name = sanitize(segment, rules)
        if not name:
            logger.debug(f"Skipping empty folder segment {segment!r}")
            continue
        current = current / name
        current.mkdir(exist_ok=True)
    return current


def candidate_name(base_name: str, extension: str, number: int) -> str:
    """File name for the n-th collision candidate (0 is the plain name)."""
    if number == 0:
        return f"{base_name}.{extension}"
    return f"{base_name} ({number}).{extension}"


def _first_free(directory: Path, base_name: str, extension: str, start: int) -> int:
    number = start
    while (directory / candidate_name(base_name, extension, number)).exists():
        number += 1
    return number


def resolve_unique_path(directory: Path, base_name: str, extension: str) -> Path:
    """Find the first file name in ``directory`` that is not taken.

    Tries ``base.ext``, then ``base (1).ext``, ``base (2).ext`` and so on.
    Existence is checked on disk at call time.
    """
    number = _first_free(directory, base_name, extension, 0)
    return directory / candidate_name(base_name, extension, number)


def write_unique(directory: Path, base_name: str, extension: str, data: bytes) -> Path:
    """Write ``data`` under the first free collision candidate.

    The file is created exclusively, so when another writer claims the
    resolved name first the next candidate is tried instead of overwriting.

    Returns:
        Path of the written file
    """
    number = 0
    while True:
        number = _first_free(directory, base_name, extension, number)
        path = directory / candidate_name(base_name, extension, number)
        try:
            with open(path, "xb") as f:
                f.write(data)
            return path
        except FileExistsError:
            logger.debug(f"{path.name} was taken concurrently, retrying")
            number += 1
