"""
Operation context — the collaborators every use case needs.

Built once per CLI invocation from a LeafConfig.  Tests build their own
with fake release sources, replacers and verifiers.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from leaf.adapters.filesystem import AtomicReplacer
from leaf.adapters.releases import GitHubReleaseSource, ReleaseSource
from leaf.core.config.loader import LeafConfig
from leaf.core.models.registry import Registry
from leaf.core.persistence.audit import AuditWriter
from leaf.core.persistence.metadata_store import MetadataStore
from leaf.core.services import registry as registry_service
from leaf.core.services.cache import DownloadCache
from leaf.core.services.self_update import SelfUpdater, Verifier, probe_version


@dataclass
class LeafContext:
    config: LeafConfig
    platform_id: str = field(default_factory=lambda: registry_service.current_platform_id())
    source_factory: Callable[[str], ReleaseSource] | None = None
    replacer: AtomicReplacer | None = None
    verifier: Verifier = probe_version

    @property
    def cache(self) -> DownloadCache:
        return DownloadCache(self.config.cache_dir)

    @property
    def store(self) -> MetadataStore:
        return MetadataStore(self.config.packages_dir)

    @property
    def audit(self) -> AuditWriter:
        return AuditWriter(self.config.audit_path)

    def load_registry(self) -> Registry:
        return registry_service.load_file(self.config.registry_path)

    def release_source(self, repo: str) -> ReleaseSource:
        """Release stream for ``owner/name``."""
        if self.source_factory is not None:
            return self.source_factory(repo)
        return GitHubReleaseSource(repo, api_base=self.config.github_api)

    def self_updater(self) -> SelfUpdater:
        return SelfUpdater(
            config=self.config,
            source=self.release_source(self.config.self_repo),
            platform_id=self.platform_id,
            cache=self.cache,
            replacer=self.replacer,
            verifier=self.verifier,
        )
