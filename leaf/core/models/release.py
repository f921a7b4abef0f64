"""
Release models — what a release stream publishes.

``Release``/``ReleaseAsset`` mirror the release-listing API;
``ReleaseSelection`` is the transient outcome of version resolution.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, Field


class ReleaseAsset(BaseModel):
    """A downloadable file attached to a release."""

    name: str
    url: str
    size: int = 0


class Release(BaseModel):
    """One tagged release of a stream."""

    tag: str
    prerelease: bool = False
    draft: bool = False
    published_at: datetime | None = None
    assets: list[ReleaseAsset] = Field(default_factory=list)


def strip_v(tag: str) -> str:
    """Normalize a tag to a version string: drop one leading ``v``."""
    return tag[1:] if tag.startswith("v") else tag


@dataclass(frozen=True)
class ReleaseSelection:
    """The release picked for a target on the current platform."""

    tag: str
    version: str
    is_prerelease: bool
    asset_url: str
    asset_name: str

    @classmethod
    def from_release(cls, release: Release, asset: ReleaseAsset) -> ReleaseSelection:
        return cls(
            tag=release.tag,
            version=strip_v(release.tag),
            is_prerelease=release.prerelease,
            asset_url=asset.url,
            asset_name=asset.name,
        )
