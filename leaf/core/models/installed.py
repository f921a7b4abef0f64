"""
InstalledPackage — the record of one successful install.

Serialized next to the package's files as ``leaf-package.json``. It is
the only source of truth for removal: whatever it lists is deleted,
nothing else is.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class InstalledPackage(BaseModel):
    """Install record for one package name."""

    schema_version: int = 1

    name: str
    version: str
    platform_id: str
    installed_files: list[str] = Field(default_factory=list)  # absolute executable paths
    links: list[str] = Field(default_factory=list)            # absolute bin_dir link paths
    installed_at: str = Field(default_factory=_now_iso)

    def same_payload(self, other: InstalledPackage) -> bool:
        """Whether two records describe the same install, ignoring the timestamp."""
        return (
            self.name == other.name
            and self.version == other.version
            and self.platform_id == other.platform_id
            and self.installed_files == other.installed_files
            and self.links == other.links
        )
