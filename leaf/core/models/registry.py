"""
Registry model — the package catalog.

The catalog is a single JSON document mapping package name to a
descriptor. Each descriptor lists, per platform id (``"<os>-<arch>"``),
where the release asset lives and which executables it provides.

Two descriptor shapes are accepted::

    # platform-aware
    "rg": {
        "description": "...", "version": "14.1.0", "tags": ["search"],
        "platforms": {
            "linux-x86_64": {
                "url": "https://.../ripgrep-x86_64.tar.gz",
                "type": "archive",
                "executables": [{"path": "ripgrep/rg", "name": "rg"}]
            }
        }
    }

    # flat (legacy packages.json), normalized to a linux-x86_64 entry
    "rg": {"description": "...", "version": "14.1.0",
           "url": "https://...", "executables": "ripgrep/rg"}
"""

from __future__ import annotations

import posixpath
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

# Platform assumed for flat descriptors, which predate per-platform targets.
LEGACY_PLATFORM_ID = "linux-x86_64"


class ArchiveFormat(StrEnum):
    """Closed set of asset formats the installer knows how to unpack."""

    TAR_GZ = "tar.gz"
    TAR_XZ = "tar.xz"
    ZIP = "zip"
    RAW = "raw"

    @classmethod
    def detect(cls, archive_kind: str, asset_name: str) -> ArchiveFormat | None:
        """Pick the format for an asset, or None if the suffix is unknown."""
        if archive_kind == "raw-binary":
            return cls.RAW
        lowered = asset_name.lower()
        if lowered.endswith((".tar.gz", ".tgz")):
            return cls.TAR_GZ
        if lowered.endswith((".tar.xz", ".txz")):
            return cls.TAR_XZ
        if lowered.endswith(".zip"):
            return cls.ZIP
        return None


class ExecutableSpec(BaseModel):
    """One executable shipped inside an asset."""

    model_config = ConfigDict(populate_by_name=True)

    path_in_archive: str = Field(alias="path", min_length=1)
    installed_name: str = Field(default="", alias="name")

    @model_validator(mode="after")
    def _default_name(self) -> ExecutableSpec:
        if not self.installed_name:
            self.installed_name = posixpath.basename(self.path_in_archive.rstrip("/"))
        return self


class PlatformTarget(BaseModel):
    """Where to fetch a package for one platform and what it contains."""

    model_config = ConfigDict(populate_by_name=True)

    url: str
    archive_kind: Literal["archive", "raw-binary"] = Field(default="archive", alias="type")
    executables: list[ExecutableSpec] = Field(min_length=1)

    @field_validator("archive_kind", mode="before")
    @classmethod
    def _normalize_kind(cls, value: Any) -> Any:
        # Legacy catalogs wrote "binary" / "raw" for bare executables.
        if value in ("binary", "raw", "raw_binary"):
            return "raw-binary"
        if value is None:
            return "archive"
        return value

    @field_validator("executables", mode="before")
    @classmethod
    def _coerce_executables(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [{"path": value}]
        if isinstance(value, list):
            return [{"path": item} if isinstance(item, str) else item for item in value]
        return value

    @property
    def asset_name(self) -> str:
        """File name component of the URL."""
        return self.url.rstrip("/").rsplit("/", 1)[-1].split("?", 1)[0]

    @property
    def archive_format(self) -> ArchiveFormat | None:
        return ArchiveFormat.detect(self.archive_kind, self.asset_name)


class PackageDescriptor(BaseModel):
    """Catalog entry for one package."""

    description: str = ""
    version: str
    tags: set[str] = Field(default_factory=set)
    repo: str | None = None  # owner/name release stream, for pinned/prerelease installs
    platforms: dict[str, PlatformTarget] = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _lift_flat_shape(cls, data: Any) -> Any:
        if isinstance(data, dict) and "platforms" not in data and "url" in data:
            data = dict(data)
            target = {
                "url": data.pop("url"),
                "type": data.pop("type", None),
                "executables": data.pop("executables", None),
            }
            data["platforms"] = {LEGACY_PLATFORM_ID: target}
        if isinstance(data, dict) and data.get("tags") is None:
            data = {**data, "tags": []}
        return data

    @field_serializer("tags")
    def _sorted_tags(self, tags: set[str]) -> list[str]:
        return sorted(tags)


class Registry(BaseModel):
    """The whole catalog, keyed by package name."""

    packages: dict[str, PackageDescriptor] = Field(default_factory=dict)

    def __contains__(self, name: object) -> bool:
        return name in self.packages

    def __len__(self) -> int:
        return len(self.packages)

    def get(self, name: str) -> PackageDescriptor | None:
        return self.packages.get(name)
