"""
Domain models — Pydantic types for leaf.

All models are re-exported here for convenient access:

    from leaf.core.models import Registry, PlatformTarget, InstalledPackage
"""

from leaf.core.models.installed import InstalledPackage
from leaf.core.models.registry import (
    ArchiveFormat,
    ExecutableSpec,
    PackageDescriptor,
    PlatformTarget,
    Registry,
)
from leaf.core.models.release import Release, ReleaseAsset, ReleaseSelection, strip_v

__all__ = [
    "ArchiveFormat",
    "ExecutableSpec",
    "InstalledPackage",
    "PackageDescriptor",
    "PlatformTarget",
    "Registry",
    "Release",
    "ReleaseAsset",
    "ReleaseSelection",
    "strip_v",
]
