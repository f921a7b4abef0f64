"""
Adapters — leaf's boundary with the outside world.

HTTP transport, release listings and binary replacement live here so
the core services can be driven by in-memory fakes.
"""

from leaf.adapters.filesystem import AtomicReplacer, OsReplacer
from leaf.adapters.releases import GitHubReleaseSource, ReleaseSource

__all__ = [
    "AtomicReplacer",
    "GitHubReleaseSource",
    "OsReplacer",
    "ReleaseSource",
]
