"""
Version resolver — pick the release to install.

Policy, in order:
    1. explicit version   → that exact tag (``v`` prefix tried as fallback)
    2. allow_prerelease   → newest prerelease by publish time
    3. otherwise          → newest stable release by publish time

Within the chosen release the asset whose name contains the platform id
is selected.  "Already current" is exact string equality of the
normalized versions, never a semantic comparison.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from leaf.adapters.releases import ReleaseSource
from leaf.core.errors import (
    AssetNotFoundForPlatform,
    InvalidArguments,
    NoPrereleaseAvailable,
    NoStableRelease,
    PackageNotFound,
    VersionNotFound,
)
from leaf.core.models.registry import Registry
from leaf.core.models.release import Release, ReleaseAsset, ReleaseSelection, strip_v
from leaf.core.services.registry import resolve as resolve_target

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=UTC)

# Checksums, signatures and SBOMs that sit next to the real assets
_SIDECAR_SUFFIXES = (".sha256", ".sha512", ".sha256sum", ".sig", ".asc", ".pem", ".sbom", ".json", ".txt")

_PLATFORM_IN_NAME = re.compile(r"(linux|darwin|macos|windows|freebsd)-([a-z0-9_]+)")


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving a target against a current version."""

    selection: ReleaseSelection
    already_current: bool = False


def is_current(resolved_version: str, current_version: str | None) -> bool:
    """Exact equality after stripping one leading ``v`` from each side."""
    if not current_version:
        return False
    return strip_v(resolved_version) == strip_v(current_version)


def select_release(
    source: ReleaseSource,
    *,
    version: str | None = None,
    allow_prerelease: bool = False,
) -> Release:
    """Apply the selection policy to a release stream.

    Raises:
        InvalidArguments: Both ``version`` and ``allow_prerelease`` given.
        VersionNotFound / NoPrereleaseAvailable / NoStableRelease.
    """
    if version and allow_prerelease:
        raise InvalidArguments("Cannot specify both an explicit version and --prerelease")

    if version:
        release = source.get_release(version)
        if release is None and not version.startswith("v"):
            release = source.get_release(f"v{version}")
        if release is None:
            raise VersionNotFound(source.name, version)
        return release

    published = [r for r in source.list_releases() if not r.draft]

    if allow_prerelease:
        candidates = [r for r in published if r.prerelease]
        if not candidates:
            raise NoPrereleaseAvailable(source.name)
    else:
        candidates = [r for r in published if not r.prerelease]
        if not candidates:
            raise NoStableRelease(source.name)

    return max(candidates, key=_published)


def _published(release: Release) -> datetime:
    stamp = release.published_at or _EPOCH
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=UTC)
    return stamp


def asset_platforms(assets: list[ReleaseAsset]) -> list[str]:
    """Platform ids encoded in asset names, for diagnostics."""
    found = set()
    for asset in assets:
        match = _PLATFORM_IN_NAME.search(asset.name.lower())
        if match:
            found.add(f"{match.group(1)}-{match.group(2)}")
    return sorted(found)


def find_platform_asset(release: Release, platform_id: str, target: str) -> ReleaseAsset:
    """The asset for ``platform_id`` in ``release``.

    Raises:
        AssetNotFoundForPlatform: Carries the platforms that do exist.
    """
    wanted = platform_id.lower()
    for asset in release.assets:
        name = asset.name.lower()
        if wanted in name and not name.endswith(_SIDECAR_SUFFIXES):
            return asset
    raise AssetNotFoundForPlatform(target, release.tag, platform_id, asset_platforms(release.assets))


def resolve_release(
    source: ReleaseSource,
    platform_id: str,
    *,
    version: str | None = None,
    allow_prerelease: bool = False,
    current_version: str | None = None,
) -> Resolution:
    """Select a release and its platform asset from ``source``."""
    release = select_release(source, version=version, allow_prerelease=allow_prerelease)
    asset = find_platform_asset(release, platform_id, source.name)
    selection = ReleaseSelection.from_release(release, asset)

    logger.info(
        "Resolved %s → %s (%s)%s",
        source.name,
        selection.tag,
        asset.name,
        " [prerelease]" if selection.is_prerelease else "",
    )
    return Resolution(
        selection=selection,
        already_current=is_current(selection.version, current_version),
    )


def resolve_package(
    registry: Registry,
    name: str,
    platform_id: str,
    *,
    version: str | None = None,
    allow_prerelease: bool = False,
    current_version: str | None = None,
    source_factory: Callable[[str], ReleaseSource] | None = None,
) -> Resolution:
    """Resolve a catalog package.

    Without a pinned version or prerelease flag the registry entry is the
    answer and no network is touched.  Otherwise the package's ``repo``
    stream is consulted through ``source_factory``.
    """
    if version and allow_prerelease:
        raise InvalidArguments("Cannot specify both an explicit version and --prerelease")

    descriptor = registry.get(name)
    if descriptor is None:
        raise PackageNotFound(name)
    target = resolve_target(registry, name, platform_id)

    if not version and not allow_prerelease:
        selection = ReleaseSelection(
            tag=descriptor.version,
            version=strip_v(descriptor.version),
            is_prerelease=False,
            asset_url=target.url,
            asset_name=target.asset_name,
        )
        return Resolution(
            selection=selection,
            already_current=is_current(selection.version, current_version),
        )

    if not descriptor.repo:
        raise InvalidArguments(
            f"Package '{name}' has no release stream; only version "
            f"{descriptor.version} from the registry can be installed"
        )
    if source_factory is None:
        raise InvalidArguments(f"No release source available for '{name}'")

    return resolve_release(
        source_factory(descriptor.repo),
        platform_id,
        version=version,
        allow_prerelease=allow_prerelease,
        current_version=current_version,
    )
