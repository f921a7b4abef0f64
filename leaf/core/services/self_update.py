"""
Self-updater — replace leaf's own executable while it is running.

Sequence for an update from A to B:

    1. resolve B from leaf's release stream (stop if A == B)
    2. fetch B's asset through the download cache (key "self")
    3. extract the one executable into a staging dir next to the binary
    4. delete a stale ``leaf.old``, then set A aside as ``leaf.old``
    5. chmod the staged B and rename it onto the canonical path
    6. record B in ``.version`` and ask B for ``--version``

Steps 4 and 5 are same-directory renames, so at every instant the
canonical path names either A or B.  A failed rename raises
SelfUpdateUnsafe; a failed version probe only produces a warning.
"""

from __future__ import annotations

import logging
import shutil
import stat
import subprocess
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from leaf import __version__
from leaf.adapters.filesystem import AtomicReplacer, OsReplacer
from leaf.adapters.releases import ReleaseSource
from leaf.core.config.loader import LeafConfig
from leaf.core.errors import InstallError, SelfUpdateUnsafe, SelfUpdateVerificationFailed
from leaf.core.models.registry import ArchiveFormat
from leaf.core.models.release import strip_v
from leaf.core.services.archive import extractor_for, locate
from leaf.core.services.cache import SELF_KEY, CacheKey, DownloadCache
from leaf.core.services.versions import resolve_release

logger = logging.getLogger(__name__)

_EXEC_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH

# binary -> version it reports, or None if it could not be run
Verifier = Callable[[Path], str | None]


def probe_version(binary: Path, timeout: float = 10) -> str | None:
    """Run ``<binary> --version`` and return the last word of its output."""
    try:
        r = subprocess.run(
            [str(binary), "--version"],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("Cannot run %s --version: %s", binary, e)
        return None
    if r.returncode != 0:
        logger.debug("%s --version exited %d", binary, r.returncode)
        return None
    parts = r.stdout.strip().split()
    return parts[-1] if parts else None


@dataclass
class SelfUpdateResult:
    already_current: bool
    from_version: str
    to_version: str
    binary: Path
    previous: Path | None = None
    warning: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "already_current": self.already_current,
            "from_version": self.from_version,
            "to_version": self.to_version,
            "binary": str(self.binary),
            "previous": str(self.previous) if self.previous else None,
            "warning": self.warning,
        }


class SelfUpdater:
    """Upgrades the binary at ``config.self_binary``.

    Args:
        config: Paths; the binary and its ``.old`` live in ``bin_dir``.
        source: leaf's own release stream.
        platform_id: Asset selector, e.g. ``linux-x86_64``.
        cache: Download cache shared with package installs.
        replacer: Rename capability; ``OsReplacer`` unless testing.
        verifier: Reports the version a binary prints.
    """

    def __init__(
        self,
        config: LeafConfig,
        source: ReleaseSource,
        platform_id: str,
        cache: DownloadCache,
        replacer: AtomicReplacer | None = None,
        verifier: Verifier = probe_version,
    ):
        self._config = config
        self._source = source
        self._platform_id = platform_id
        self._cache = cache
        self._replacer = replacer or OsReplacer()
        self._verifier = verifier

    def current_version(self) -> str:
        """Version recorded by the last self-update, else the running one."""
        path = self._config.version_file
        try:
            recorded = path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return __version__
        except OSError as e:
            logger.warning("Cannot read %s: %s", path, e)
            return __version__
        return recorded or __version__

    def run(
        self,
        version: str | None = None,
        allow_prerelease: bool = False,
        force: bool = False,
    ) -> SelfUpdateResult:
        binary = self._config.self_binary
        current = self.current_version()

        resolution = resolve_release(
            self._source,
            self._platform_id,
            version=version,
            allow_prerelease=allow_prerelease,
            current_version=current,
        )
        selection = resolution.selection

        if resolution.already_current and not force:
            logger.info("leaf is already at %s", current)
            return SelfUpdateResult(
                already_current=True,
                from_version=current,
                to_version=selection.version,
                binary=binary,
            )

        archive = self._cache.fetch(
            CacheKey(SELF_KEY, selection.version, self._platform_id),
            selection.asset_url,
        )
        fmt = ArchiveFormat.detect("archive", selection.asset_name) or ArchiveFormat.RAW

        staging = binary.parent / f".{self._config.self_executable}.staging"
        try:
            staged = self._stage(archive, fmt, staging)
            previous = self._swap(staged, binary)
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        self._record_version(selection.version)
        logger.info("leaf updated %s → %s", current, selection.version)

        return SelfUpdateResult(
            already_current=False,
            from_version=current,
            to_version=selection.version,
            binary=binary,
            previous=previous,
            warning=self._verify(binary, selection.version),
        )

    # ── Steps ───────────────────────────────────────────────────

    def _stage(self, archive: Path, fmt: ArchiveFormat, staging: Path) -> Path:
        """Extract the new executable into ``staging`` and return its path."""
        try:
            if staging.exists():
                shutil.rmtree(staging)
            staging.mkdir(parents=True)
        except OSError as e:
            raise InstallError(f"Cannot prepare staging dir {staging}: {e}") from e
        name = self._config.self_executable
        extractor_for(fmt)(archive, staging, name)
        return locate(staging, name)

    def _swap(self, staged: Path, binary: Path) -> Path | None:
        previous = self._config.self_previous

        try:
            if previous.exists() or previous.is_symlink():
                logger.debug("Removing stale %s", previous)
                previous.unlink()
        except OSError as e:
            raise SelfUpdateUnsafe(f"Cannot remove stale {previous}: {e}") from e

        had_binary = binary.exists() or binary.is_symlink()
        if had_binary:
            try:
                self._replacer.set_aside(binary, previous)
            except OSError as e:
                raise SelfUpdateUnsafe(
                    f"Cannot set aside {binary}: {e}; the current binary is unchanged"
                ) from e

        try:
            staged.chmod(staged.stat().st_mode | _EXEC_BITS)
            self._replacer.replace(staged, binary)
        except OSError as e:
            hint = f"; the previous binary is at {previous}" if had_binary else ""
            raise SelfUpdateUnsafe(f"Cannot move the new binary onto {binary}: {e}{hint}") from e

        return previous if had_binary else None

    def _record_version(self, version: str) -> None:
        path = self._config.version_file
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(version + "\n", encoding="utf-8")
        except OSError as e:
            logger.warning("Cannot record version in %s: %s", path, e)

    def _verify(self, binary: Path, expected: str) -> str | None:
        reported = self._verifier(binary)
        if reported is not None and strip_v(reported) == strip_v(expected):
            logger.debug("Verified %s reports %s", binary, reported)
            return None
        warning = SelfUpdateVerificationFailed(
            f"{binary} reports version {reported or 'unknown'}, expected {expected}"
        )
        logger.warning("%s", warning)
        return str(warning)
