"""
Archive installer — unpack, place, link; and the matching uninstall.

``install`` works package-at-a-time and all-or-nothing:

    1. extract into ``<packages_dir>/.staging-<name>`` (wiped first)
    2. locate every executable before touching anything else
    3. move each into ``<packages_dir>/<name>/``, chmod +x, link it
       from ``<bin_dir>/<installed_name>``

Every change made in step 3 is journalled.  On failure the journal is
replayed backwards: created files and links are removed and whatever
they displaced (the previous version's file or link) is put back.  The
staging tree is always deleted.

The installer never writes the InstalledPackage record; it returns an
InstallResult for the caller to commit.
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from leaf.core.errors import InstallError
from leaf.core.models.installed import InstalledPackage
from leaf.core.models.registry import ArchiveFormat, ExecutableSpec
from leaf.core.services.archive import extractor_for, locate

logger = logging.getLogger(__name__)

_EXEC_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


@dataclass
class InstallResult:
    """What one successful ``install`` call wrote."""

    package_dir: Path
    files: list[Path] = field(default_factory=list)
    links: list[Path] = field(default_factory=list)


def staging_dir(packages_dir: Path, name: str) -> Path:
    return packages_dir / f".staging-{name}"


# ── Undo journal ────────────────────────────────────────────────


class _Journal:
    """Reverse-order undo log for a single install call."""

    def __init__(self) -> None:
        self._entries: list[tuple[str, Path, Path | None]] = []

    def created(self, path: Path) -> None:
        self._entries.append(("created", path, None))

    def created_dir(self, path: Path) -> None:
        self._entries.append(("dir", path, None))

    def displace(self, path: Path) -> None:
        """Move an existing file or link aside so it can be restored."""
        backup = path.with_name(f".{path.name}.leaf-bak")
        if backup.is_symlink() or backup.exists():
            backup.unlink()
        os.rename(path, backup)
        self._entries.append(("displaced", path, backup))

    def rollback(self) -> None:
        for kind, path, backup in reversed(self._entries):
            try:
                if kind == "created":
                    if path.is_symlink() or path.exists():
                        path.unlink()
                elif kind == "dir":
                    if path.is_dir() and not any(path.iterdir()):
                        path.rmdir()
                elif kind == "displaced" and backup is not None:
                    os.replace(backup, path)
            except OSError as e:
                # Keep unwinding; the original failure is what gets reported
                logger.error("Rollback step failed for %s: %s", path, e)
        self._entries.clear()

    def commit(self) -> None:
        for kind, _path, backup in self._entries:
            if kind == "displaced" and backup is not None:
                backup.unlink(missing_ok=True)
        self._entries.clear()


# ── Install ─────────────────────────────────────────────────────


def install(
    name: str,
    archive_path: Path,
    archive_format: ArchiveFormat,
    executables: list[ExecutableSpec],
    packages_dir: Path,
    bin_dir: Path,
) -> InstallResult:
    """Install the executables of one package from a cached archive.

    Raises:
        ExecutableMissingInArchive: A listed path is not in the archive.
        InstallError: Extraction or filesystem failure (already rolled back).
    """
    if not executables:
        raise InstallError(f"Package '{name}' declares no executables")
    names = [spec.installed_name for spec in executables]
    if len(set(names)) != len(names):
        raise InstallError(f"Package '{name}' declares duplicate executable names: {names}")

    staging = staging_dir(packages_dir, name)
    try:
        if staging.exists():
            logger.debug("Removing leftover staging dir %s", staging)
            shutil.rmtree(staging)
        staging.mkdir(parents=True)
        bin_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise InstallError(f"Cannot prepare install of '{name}': {e}") from e

    try:
        extract = extractor_for(archive_format)
        logger.debug("Extracting %s (%s) into %s", archive_path.name, archive_format, staging)
        extract(archive_path, staging, executables[0].path_in_archive)

        located = [(spec, locate(staging, spec.path_in_archive)) for spec in executables]

        journal = _Journal()
        try:
            result = _place(name, located, packages_dir, bin_dir, journal)
        except OSError as e:
            journal.rollback()
            raise InstallError(f"Install of '{name}' failed and was rolled back: {e}") from e
        except BaseException:
            journal.rollback()
            raise
        journal.commit()
    finally:
        shutil.rmtree(staging, ignore_errors=True)

    logger.info("Installed %s: %s", name, ", ".join(p.name for p in result.links))
    return result


def _place(
    name: str,
    located: list[tuple[ExecutableSpec, Path]],
    packages_dir: Path,
    bin_dir: Path,
    journal: _Journal,
) -> InstallResult:
    package_dir = packages_dir / name
    if not package_dir.is_dir():
        package_dir.mkdir(parents=True)
        journal.created_dir(package_dir)

    result = InstallResult(package_dir=package_dir.absolute())
    placed: set[Path] = set()

    for spec, source in located:
        dest = package_dir.joinpath(*PurePosixPath(spec.path_in_archive.strip("/")).parts)
        # aliases share one file; move it once, link it per name
        if dest not in placed:
            _make_parents(dest.parent, package_dir, journal)
            if dest.is_symlink() or dest.exists():
                journal.displace(dest)
            os.replace(source, dest)
            journal.created(dest)
            dest.chmod(dest.stat().st_mode | _EXEC_BITS)
            placed.add(dest)
            result.files.append(dest.absolute())

        link = bin_dir / spec.installed_name
        if link.is_dir() and not link.is_symlink():
            raise InstallError(f"Cannot link {spec.installed_name}: {link} is a directory")
        if link.is_symlink() or link.exists():
            if not link.is_symlink():
                logger.warning("Replacing non-link file %s", link)
            journal.displace(link)
        link.symlink_to(dest.absolute())
        journal.created(link)

        result.links.append(link.absolute())

    return result


def _make_parents(directory: Path, package_dir: Path, journal: _Journal) -> None:
    """mkdir -p below package_dir, journalling each directory created."""
    missing = []
    current = directory
    while current != package_dir and not current.exists():
        missing.append(current)
        current = current.parent
    for path in reversed(missing):
        path.mkdir()
        journal.created_dir(path)


# ── Uninstall ───────────────────────────────────────────────────


def uninstall(record: InstalledPackage, packages_dir: Path) -> list[Path]:
    """Delete what ``record`` lists: links first, then files, then empty dirs.

    Returns:
        The paths that were removed.

    Raises:
        InstallError: A filesystem failure part-way through.
    """
    package_dir = packages_dir / record.name
    return remove_paths(
        links=[Path(p) for p in record.links],
        files=[Path(p) for p in record.installed_files],
        package_dir=package_dir,
    )


def prune_previous(previous: InstalledPackage, current: InstallResult, packages_dir: Path) -> list[Path]:
    """After an upgrade, drop links and files the new version no longer ships."""
    keep_links = {str(p) for p in current.links}
    keep_files = {str(p) for p in current.files}
    return remove_paths(
        links=[Path(p) for p in previous.links if p not in keep_links],
        files=[Path(p) for p in previous.installed_files if p not in keep_files],
        package_dir=packages_dir / previous.name,
        keep_package_dir=True,
    )


def remove_paths(
    links: list[Path],
    files: list[Path],
    package_dir: Path,
    *,
    keep_package_dir: bool = False,
) -> list[Path]:
    removed: list[Path] = []
    owned_root = package_dir.absolute()

    try:
        # Links go first: a half-finished removal leaves a missing command,
        # never a link to something unexpected.
        for link in links:
            if not link.is_symlink():
                if link.exists():
                    logger.warning("Leaving %s: not a symlink", link)
                continue
            target = Path(os.readlink(link))
            if not target.is_absolute():
                target = link.parent / target
            if owned_root not in target.absolute().parents:
                logger.warning("Leaving %s: points outside %s", link, owned_root)
                continue
            link.unlink()
            removed.append(link)

        for path in files:
            if path.is_symlink() or path.exists():
                path.unlink()
                removed.append(path)
            _prune_empty(path.parent, owned_root)

        if not keep_package_dir and package_dir.is_dir() and not any(package_dir.iterdir()):
            package_dir.rmdir()
            removed.append(package_dir)
    except OSError as e:
        raise InstallError(f"Removal in {package_dir} failed: {e}") from e

    return removed


def _prune_empty(directory: Path, stop: Path) -> None:
    """Remove empty directories from ``directory`` up to (not including) ``stop``."""
    current = directory.absolute()
    while current != stop and stop in current.parents:
        if not current.is_dir() or any(current.iterdir()):
            return
        current.rmdir()
        current = current.parent
