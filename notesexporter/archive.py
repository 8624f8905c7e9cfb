"""Package an export folder into a deterministic ZIP archive."""

import logging
import os
import tempfile
import zipfile
from pathlib import Path

from .exceptions import ArchiveError

logger = logging.getLogger(__name__)

# Earliest timestamp ZIP can represent; used for every entry
FIXED_DATE_TIME = (1980, 1, 1, 0, 0, 0)
FILE_MODE = 0o644
DIR_MODE = 0o755


def _entry(name: str, is_dir: bool) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(name, date_time=FIXED_DATE_TIME)
    info.create_system = 3  # Unix, so external_attr carries permissions
    if is_dir:
        info.external_attr = (0o40000 | DIR_MODE) << 16 | 0x10
        info.compress_type = zipfile.ZIP_STORED
    else:
        info.external_attr = (0o100000 | FILE_MODE) << 16
        info.compress_type = zipfile.ZIP_DEFLATED
    return info


def _walk_sorted(directory: Path):
    """Yield (path, is_dir) below ``directory`` in a stable order."""
    for child in sorted(directory.iterdir(), key=lambda p: p.name):
        if child.is_dir():
            yield child, True
            yield from _walk_sorted(child)
        else:
            yield child, False


def write_zip(source_dir: Path, target: Path) -> int:
    """Write ``source_dir`` into a new ZIP file at ``target``.

    The folder itself is the single top-level entry. Entries are sorted and
    carry fixed timestamps and permissions, so equal trees give equal bytes.

    Returns:
        Number of file entries written
    """
    files = 0
    root_name = source_dir.name
    with zipfile.ZipFile(target, "w", zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(_entry(f"{root_name}/", is_dir=True), b"")
        for path, is_dir in _walk_sorted(source_dir):
            name = f"{root_name}/{path.relative_to(source_dir).as_posix()}"
            if is_dir:
                archive.writestr(_entry(f"{name}/", is_dir=True), b"")
            else:
                archive.writestr(_entry(name, is_dir=False), path.read_bytes())
                files += 1
    return files


def archive_directory(source_dir: Path, destination: Path) -> Path:
    """Archive ``source_dir`` to ``destination``, replacing any existing file.

    The archive is assembled in a temporary file beside the destination and
    moved into place only once complete, so a failure never leaves a
    partial file at ``destination``.

    Returns:
        The destination path

    Raises:
        ArchiveError: If the archive cannot be written or moved into place
    """
    source_dir = Path(source_dir)
    destination = Path(destination)
    if not source_dir.is_dir():
        raise ArchiveError(f"Nothing to archive: {source_dir} is not a directory")

    try:
        fd, temp_name = tempfile.mkstemp(
            prefix=f".{destination.name}.", suffix=".part", dir=destination.parent
        )
    except OSError as e:
        raise ArchiveError(f"Cannot write to {destination.parent}: {e}") from e
    os.close(fd)
    temp_path = Path(temp_name)

    try:
        files = write_zip(source_dir, temp_path)
        # mkstemp creates the file owner-only
        os.chmod(temp_path, FILE_MODE)
        os.replace(temp_path, destination)
    except (OSError, zipfile.BadZipFile) as e:
        temp_path.unlink(missing_ok=True)
        raise ArchiveError(f"Failed to write archive {destination}: {e}") from e

    logger.info(f"Archived {files} file(s) to {destination}")
    return destination
