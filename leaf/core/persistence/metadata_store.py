"""
Metadata store — one InstalledPackage record per package.

Records live at ``<packages_dir>/<name>/leaf-package.json`` so a package
directory carries its own description.  Writes are atomic (write to temp
file, then rename); a crash mid-write leaves the previous record.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from leaf.core.errors import InstallError, NotInstalledError
from leaf.core.models.installed import InstalledPackage

logger = logging.getLogger(__name__)

RECORD_FILE = "leaf-package.json"


class MetadataStore:
    """Install records under ``packages_dir``."""

    def __init__(self, packages_dir: Path):
        self._packages_dir = packages_dir

    @property
    def packages_dir(self) -> Path:
        return self._packages_dir

    def path_for(self, name: str) -> Path:
        return self._packages_dir / name / RECORD_FILE

    def record(self, package: InstalledPackage) -> None:
        """Create or overwrite the record for ``package.name``.

        Re-recording an identical install keeps the original timestamp,
        so a repeated install leaves the record unchanged.
        """
        existing = self.get(package.name)
        if existing is not None and existing.same_payload(package):
            logger.debug("Record for %s unchanged", package.name)
            return

        path = self.path_for(package.name)
        content = json.dumps(package.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".record_", suffix=".tmp")
            tmp = Path(tmp_path)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(content)
                tmp.replace(path)
            except OSError:
                tmp.unlink(missing_ok=True)
                raise
        except OSError as e:
            raise InstallError(f"Cannot write install record for '{package.name}': {e}") from e

        logger.debug("Recorded %s %s", package.name, package.version)

    def get(self, name: str) -> InstalledPackage | None:
        """The record for ``name``, or None if absent or unreadable."""
        path = self.path_for(name)
        if not path.is_file():
            return None
        return _read(path)

    def remove(self, name: str) -> InstalledPackage:
        """Delete the record and return what it held.

        The listed files are untouched; pass the returned record to
        ``installer.uninstall``.

        Raises:
            NotInstalledError: No (readable) record for ``name``.
        """
        record = self.get(name)
        if record is None:
            raise NotInstalledError(name)
        try:
            self.path_for(name).unlink(missing_ok=True)
        except OSError as e:
            raise InstallError(f"Cannot delete install record for '{name}': {e}") from e
        return record

    def list(self) -> list[InstalledPackage]:
        """All readable records, ordered by name."""
        if not self._packages_dir.is_dir():
            return []

        records = []
        for child in sorted(self._packages_dir.iterdir()):
            if child.name.startswith(".") or not child.is_dir():
                continue
            path = child / RECORD_FILE
            if not path.is_file():
                continue
            record = _read(path)
            if record is not None:
                records.append(record)
        return sorted(records, key=lambda r: r.name)

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None


def _read(path: Path) -> InstalledPackage | None:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return InstalledPackage.model_validate(data)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.warning("Skipping corrupt install record %s: %s", path, e)
        return None
