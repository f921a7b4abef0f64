"""
Package use cases — what the CLI commands do.

Each function resolves, fetches, installs or removes through the core
services and returns a result object; errors from the services surface
unchanged.  Every state-changing operation leaves an audit entry.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from leaf.core.errors import InstallError, InvalidArguments, LeafError, NotInstalledError, PackageNotFound
from leaf.core.models.installed import InstalledPackage
from leaf.core.models.registry import ArchiveFormat, PackageDescriptor, PlatformTarget, Registry
from leaf.core.models.release import ReleaseSelection
from leaf.core.persistence.audit import AuditEntry
from leaf.core.services import installer
from leaf.core.services import registry as registry_service
from leaf.core.services.cache import CacheKey
from leaf.core.services.self_update import SelfUpdateResult
from leaf.core.services.versions import resolve_package
from leaf.core.use_cases.context import LeafContext

logger = logging.getLogger(__name__)


# ── Results ─────────────────────────────────────────────────────


@dataclass
class InstallOutcome:
    """Result of an install or upgrade of one package."""

    name: str
    status: str = ""               # installed, upgraded, reinstalled, already_installed, up_to_date, failed
    from_version: str | None = None
    to_version: str | None = None
    links: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def changed(self) -> bool:
        return self.status in ("installed", "upgraded", "reinstalled")

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "from_version": self.from_version,
            "to_version": self.to_version,
            "links": self.links,
            "error": self.error,
        }


@dataclass
class RemoveOutcome:
    name: str
    version: str
    removed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "version": self.version, "removed": self.removed}


@dataclass
class SearchHit:
    name: str
    descriptor: PackageDescriptor
    installed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.descriptor.version,
            "description": self.descriptor.description,
            "tags": sorted(self.descriptor.tags),
            "installed": self.installed,
        }


@dataclass
class PackageInfo:
    name: str
    descriptor: PackageDescriptor
    platform_id: str
    record: InstalledPackage | None = None

    @property
    def available(self) -> bool:
        return self.platform_id in self.descriptor.platforms

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.descriptor.description,
            "version": self.descriptor.version,
            "tags": sorted(self.descriptor.tags),
            "repo": self.descriptor.repo,
            "platforms": sorted(self.descriptor.platforms),
            "platform_id": self.platform_id,
            "available": self.available,
            "installed": self.record.model_dump(mode="json") if self.record else None,
        }


@dataclass
class UpdateResult:
    url: str
    path: Path
    package_count: int

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "path": str(self.path), "package_count": self.package_count}


@dataclass
class NukeResult:
    packages_removed: list[str] = field(default_factory=list)
    paths_removed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"packages_removed": self.packages_removed, "paths_removed": self.paths_removed}


# ── Install / upgrade ───────────────────────────────────────────


def install_package(
    ctx: LeafContext,
    name: str,
    *,
    version: str | None = None,
    allow_prerelease: bool = False,
) -> InstallOutcome:
    """Install ``name`` from the registry.

    Installing a package that is already present at the resolved version
    (with its files intact) is a no-op.  Any other version replaces it.
    """
    registry = ctx.load_registry()
    existing = ctx.store.get(name)
    return _install_or_upgrade(
        ctx, registry, name, existing,
        operation="install",
        version=version,
        allow_prerelease=allow_prerelease,
    )


def upgrade_package(
    ctx: LeafContext,
    name: str,
    *,
    version: str | None = None,
    allow_prerelease: bool = False,
) -> InstallOutcome:
    """Move an installed package to the resolved version.

    Raises:
        NotInstalledError: ``name`` has no install record.
    """
    existing = ctx.store.get(name)
    if existing is None:
        raise NotInstalledError(name)
    registry = ctx.load_registry()
    return _install_or_upgrade(
        ctx, registry, name, existing,
        operation="upgrade",
        version=version,
        allow_prerelease=allow_prerelease,
    )


def upgrade_all(ctx: LeafContext) -> list[InstallOutcome]:
    """Upgrade every installed package to its registry version.

    One failing package does not stop the others; its outcome carries
    the error instead.
    """
    registry = ctx.load_registry()
    outcomes = []
    for record in ctx.store.list():
        try:
            outcome = _install_or_upgrade(ctx, registry, record.name, record, operation="upgrade")
        except LeafError as e:
            logger.error("Upgrade of %s failed: %s", record.name, e)
            outcome = InstallOutcome(
                name=record.name,
                status="failed",
                from_version=record.version,
                error=str(e),
            )
        outcomes.append(outcome)
    return outcomes


def _install_or_upgrade(
    ctx: LeafContext,
    registry: Registry,
    name: str,
    existing: InstalledPackage | None,
    *,
    operation: str,
    version: str | None = None,
    allow_prerelease: bool = False,
) -> InstallOutcome:
    from_version = existing.version if existing else None
    try:
        resolution = resolve_package(
            registry,
            name,
            ctx.platform_id,
            version=version,
            allow_prerelease=allow_prerelease,
            current_version=from_version,
            source_factory=ctx.release_source,
        )
        selection = resolution.selection

        if resolution.already_current and existing is not None and _intact(existing):
            status = "already_installed" if operation == "install" else "up_to_date"
            logger.info("%s %s is already installed", name, existing.version)
            ctx.audit.record(
                operation, name, status="skipped",
                from_version=from_version, to_version=selection.version,
                platform_id=ctx.platform_id,
            )
            return InstallOutcome(
                name=name,
                status=status,
                from_version=from_version,
                to_version=existing.version,
                links=list(existing.links),
            )

        target = registry_service.resolve(registry, name, ctx.platform_id)
        record = _apply(ctx, name, target, selection, existing)
    except LeafError as e:
        ctx.audit.write(AuditEntry(
            operation=operation, target=name, status="failed",
            from_version=from_version, to_version=version,
            platform_id=ctx.platform_id, error=str(e),
        ))
        raise

    if existing is None:
        status = "installed"
    elif existing.version == record.version:
        status = "reinstalled"
    else:
        status = "upgraded"

    ctx.audit.record(
        operation, name,
        from_version=from_version, to_version=record.version,
        platform_id=ctx.platform_id,
        context={"links": record.links, "asset": selection.asset_name},
    )
    return InstallOutcome(
        name=name,
        status=status,
        from_version=from_version,
        to_version=record.version,
        links=list(record.links),
    )


def _apply(
    ctx: LeafContext,
    name: str,
    target: PlatformTarget,
    selection: ReleaseSelection,
    existing: InstalledPackage | None,
) -> InstalledPackage:
    """Fetch, install, record; then drop what the old version had extra."""
    fmt = ArchiveFormat.detect(target.archive_kind, selection.asset_name)
    if fmt is None:
        raise InstallError(f"Unsupported archive format: {selection.asset_name}")

    archive = ctx.cache.fetch(CacheKey(name, selection.version, ctx.platform_id), selection.asset_url)

    result = installer.install(
        name,
        archive,
        fmt,
        target.executables,
        ctx.config.packages_dir,
        ctx.config.bin_dir,
    )

    record = InstalledPackage(
        name=name,
        version=selection.version,
        platform_id=ctx.platform_id,
        installed_files=[str(p) for p in result.files],
        links=[str(p) for p in result.links],
    )
    if existing is not None and existing.same_payload(record):
        record = existing
    ctx.store.record(record)

    if existing is not None:
        stale = installer.prune_previous(existing, result, ctx.config.packages_dir)
        if stale:
            logger.info("Removed %d file(s) left over from %s %s", len(stale), name, existing.version)

    return record


def _intact(record: InstalledPackage) -> bool:
    """Every recorded file and link is still on disk."""
    return all(Path(p).is_file() for p in record.installed_files) and all(
        Path(p).is_symlink() for p in record.links
    )


# ── Remove ──────────────────────────────────────────────────────


def remove_package(ctx: LeafContext, name: str) -> RemoveOutcome:
    """Delete exactly what ``name``'s install record lists.

    Raises:
        NotInstalledError: ``name`` is not installed.
    """
    store = ctx.store
    try:
        record = store.remove(name)
        removed = installer.uninstall(record, ctx.config.packages_dir)
    except LeafError as e:
        ctx.audit.record("remove", name, status="failed", error=str(e))
        raise

    ctx.audit.record("remove", name, from_version=record.version, platform_id=record.platform_id)
    logger.info("Removed %s %s", name, record.version)
    return RemoveOutcome(name=name, version=record.version, removed=[str(p) for p in removed])


# ── Queries ─────────────────────────────────────────────────────


def list_installed(ctx: LeafContext) -> list[InstalledPackage]:
    return ctx.store.list()


def search_packages(ctx: LeafContext, term: str) -> list[SearchHit]:
    registry = ctx.load_registry()
    installed = {record.name for record in ctx.store.list()}
    return [
        SearchHit(name=name, descriptor=descriptor, installed=name in installed)
        for name, descriptor in registry_service.find(registry, term)
    ]


def package_info(ctx: LeafContext, name: str) -> PackageInfo:
    """Registry entry and install state for ``name``.

    Raises:
        PackageNotFound: ``name`` is not in the registry.
    """
    registry = ctx.load_registry()
    descriptor = registry.get(name)
    if descriptor is None:
        raise PackageNotFound(name)
    return PackageInfo(
        name=name,
        descriptor=descriptor,
        platform_id=ctx.platform_id,
        record=ctx.store.get(name),
    )


# ── Registry / self ─────────────────────────────────────────────


def update_registry(ctx: LeafContext) -> UpdateResult:
    """Replace the local registry with the configured remote one."""
    url = ctx.config.registry_url
    dest = ctx.config.registry_path
    try:
        registry = registry_service.refresh(url, dest)
    except LeafError as e:
        ctx.audit.record("update", url, status="failed", error=str(e))
        raise
    ctx.audit.record("update", url, context={"package_count": len(registry)})
    return UpdateResult(url=url, path=dest, package_count=len(registry))


def self_update(
    ctx: LeafContext,
    *,
    version: str | None = None,
    allow_prerelease: bool = False,
    force: bool = False,
) -> SelfUpdateResult:
    updater = ctx.self_updater()
    try:
        result = updater.run(version=version, allow_prerelease=allow_prerelease, force=force)
    except LeafError as e:
        ctx.audit.record("self-update", "self", status="failed", to_version=version, error=str(e))
        raise
    ctx.audit.record(
        "self-update", "self",
        status="skipped" if result.already_current else "ok",
        from_version=result.from_version,
        to_version=result.to_version,
        platform_id=ctx.platform_id,
        error=result.warning or "",
    )
    return result


# ── Nuke ────────────────────────────────────────────────────────


def nuke(ctx: LeafContext, *, confirmed: bool = False) -> NukeResult:
    """Remove every package, leaf's data, and finally leaf itself.

    Raises:
        InvalidArguments: ``confirmed`` is not set.
    """
    if not confirmed:
        raise InvalidArguments(
            "This removes all packages and leaf itself. Re-run with --confirmed to proceed."
        )

    config = ctx.config
    result = NukeResult()
    logger.warning("Removing all packages and leaf itself")

    for record in ctx.store.list():
        ctx.store.remove(record.name)
        installer.uninstall(record, config.packages_dir)
        result.packages_removed.append(record.name)

    result.paths_removed.extend(str(p) for p in _sweep_links(config.bin_dir, config.packages_dir))

    for root in (config.packages_dir, config.cache_dir):
        if root.exists():
            try:
                shutil.rmtree(root)
            except OSError as e:
                raise InstallError(f"Cannot remove {root}: {e}") from e
            result.paths_removed.append(str(root))

    # leaf's own files only; a bin dir nested in install_dir keeps foreign files
    owned = (config.registry_path, config.config_path, config.audit_path, config.version_file)
    result.paths_removed.extend(str(p) for p in _unlink_all(owned))

    install_dir = config.install_dir
    if install_dir.is_dir():
        if any(install_dir.iterdir()):
            logger.info("Keeping %s: it still holds files leaf does not own", install_dir)
        else:
            try:
                install_dir.rmdir()
            except OSError as e:
                raise InstallError(f"Cannot remove {install_dir}: {e}") from e
            result.paths_removed.append(str(install_dir))

    result.paths_removed.extend(str(p) for p in _unlink_all((config.self_binary, config.self_previous)))
    return result


def _unlink_all(paths) -> list[Path]:
    removed = []
    for path in paths:
        if path.is_symlink() or path.exists():
            try:
                path.unlink()
            except OSError as e:
                raise InstallError(f"Cannot remove {path}: {e}") from e
            removed.append(path)
    return removed


def _sweep_links(bin_dir: Path, packages_dir: Path) -> list[Path]:
    """Delete links in ``bin_dir`` that still point into ``packages_dir``."""
    if not bin_dir.is_dir():
        return []
    root = packages_dir.absolute()
    removed = []
    for path in sorted(bin_dir.iterdir()):
        if not path.is_symlink():
            continue
        target = Path(path.readlink())
        if not target.is_absolute():
            target = bin_dir / target
        if root in target.absolute().parents:
            path.unlink()
            removed.append(path)
    return removed
