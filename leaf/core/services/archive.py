"""
Archive extraction — one strategy per ArchiveFormat.

The format is decided once from the platform target; ``extractor_for``
hands back the matching strategy and the installer never inspects the
file again.  Tar members go through the ``data`` extraction filter, so
absolute paths and links escaping the staging tree are refused.
"""

from __future__ import annotations

import logging
import lzma
import shutil
import tarfile
import zipfile
import zlib
from collections.abc import Callable
from pathlib import Path, PurePosixPath

from leaf.core.errors import ExecutableMissingInArchive, InstallError
from leaf.core.models.registry import ArchiveFormat

logger = logging.getLogger(__name__)

# (archive, staging dir, name for a raw binary) -> None
Extractor = Callable[[Path, Path, str], None]

_TAR_ERRORS = (tarfile.TarError, EOFError, zlib.error, lzma.LZMAError, OSError)


def _extract_tar(mode: str) -> Extractor:
    def extract(archive: Path, dest: Path, raw_name: str) -> None:
        try:
            with tarfile.open(archive, mode) as tar:
                tar.extractall(dest, filter="data")
        except _TAR_ERRORS as e:
            raise InstallError(f"Cannot extract {archive.name}: {e}") from e

    return extract


def _extract_zip(archive: Path, dest: Path, raw_name: str) -> None:
    try:
        with zipfile.ZipFile(archive) as zf:
            zf.extractall(dest)
    except (zipfile.BadZipFile, zlib.error, OSError) as e:
        raise InstallError(f"Cannot extract {archive.name}: {e}") from e


def _place_raw(archive: Path, dest: Path, raw_name: str) -> None:
    # The asset itself is the executable; the cached original stays put.
    target = dest / raw_name
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(archive, target)
    except OSError as e:
        raise InstallError(f"Cannot stage {archive.name}: {e}") from e


_EXTRACTORS: dict[ArchiveFormat, Extractor] = {
    ArchiveFormat.TAR_GZ: _extract_tar("r:gz"),
    ArchiveFormat.TAR_XZ: _extract_tar("r:xz"),
    ArchiveFormat.ZIP: _extract_zip,
    ArchiveFormat.RAW: _place_raw,
}


def extractor_for(fmt: ArchiveFormat) -> Extractor:
    return _EXTRACTORS[fmt]


def locate(staging: Path, path_in_archive: str) -> Path:
    """Find an executable inside an extracted tree.

    A bare file name that is not at the top level is searched for
    recursively and accepted if it matches exactly one file.

    Raises:
        ExecutableMissingInArchive: Nothing (or nothing unique) found.
    """
    relative = PurePosixPath(path_in_archive.strip("/"))
    if ".." in relative.parts or not relative.parts:
        raise ExecutableMissingInArchive(path_in_archive)

    candidate = staging.joinpath(*relative.parts)
    if candidate.is_file():
        return candidate

    if len(relative.parts) == 1:
        matches = [p for p in staging.rglob(relative.name) if p.is_file()]
        if len(matches) == 1:
            logger.debug("Found %s at %s", path_in_archive, matches[0].relative_to(staging))
            return matches[0]

    raise ExecutableMissingInArchive(path_in_archive)
