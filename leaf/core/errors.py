"""
Error taxonomy — every failure the core can report.

Services raise these; the CLI maps them to exit codes and messages.
Rollback (where any) has already happened by the time one is raised,
so the error always describes a consistent on-disk state.
"""

from __future__ import annotations


class LeafError(Exception):
    """Base class for all leaf errors."""

    kind = "error"


class ConfigError(LeafError):
    """Raised when the leaf configuration is invalid or unreadable."""

    kind = "config"


# ── Registry ────────────────────────────────────────────────────


class ParseError(LeafError):
    """The registry document could not be parsed."""

    kind = "parse"


class RegistryMissing(ParseError):
    """No registry copy on disk yet — run ``leaf update``."""

    kind = "registry_missing"


class PackageNotFound(LeafError):
    kind = "package_not_found"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Package '{name}' not found")


class PlatformUnsupported(LeafError):
    kind = "platform_unsupported"

    def __init__(self, name: str, platform_id: str, available: list[str]):
        self.name = name
        self.platform_id = platform_id
        self.available = available
        listed = ", ".join(available) or "none"
        super().__init__(
            f"Package '{name}' is not available for {platform_id} "
            f"(available: {listed})"
        )


# ── Version resolution ──────────────────────────────────────────


class InvalidArguments(LeafError):
    kind = "invalid_arguments"


class VersionNotFound(LeafError):
    kind = "version_not_found"

    def __init__(self, target: str, version: str):
        self.target = target
        self.version = version
        super().__init__(f"Version {version} of '{target}' not found")


class NoPrereleaseAvailable(LeafError):
    kind = "no_prerelease"

    def __init__(self, target: str):
        self.target = target
        super().__init__(f"No prerelease versions found for '{target}'")


class NoStableRelease(LeafError):
    kind = "no_stable_release"

    def __init__(self, target: str):
        self.target = target
        super().__init__(f"No stable release found for '{target}'")


class AssetNotFoundForPlatform(LeafError):
    kind = "asset_not_found"

    def __init__(self, target: str, tag: str, platform_id: str, available: list[str]):
        self.target = target
        self.tag = tag
        self.platform_id = platform_id
        self.available = available
        listed = ", ".join(available) or "none"
        super().__init__(
            f"No asset for {platform_id} in '{target}' release {tag} "
            f"(available platforms: {listed})"
        )


# ── Download / install ──────────────────────────────────────────


class DownloadError(LeafError):
    """Network or I/O failure while fetching a URL."""

    kind = "download"


class InstallError(LeafError):
    """Extraction or filesystem failure during install (already rolled back)."""

    kind = "install"


class ExecutableMissingInArchive(InstallError):
    kind = "executable_missing"

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Executable '{path}' not found in archive")


class NotInstalledError(LeafError):
    kind = "not_installed"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Package '{name}' is not installed")


# ── Self-update ─────────────────────────────────────────────────


class SelfUpdateVerificationFailed(LeafError):
    """The new binary did not report the expected version.

    Non-fatal: carried on the self-update result as a warning, never raised
    out of a successful update.
    """

    kind = "self_update_verification"


class SelfUpdateUnsafe(LeafError):
    """A rename during binary replacement failed.

    The canonical binary may not be the one that was intended; the caller
    must not assume the update is installed.
    """

    kind = "self_update_unsafe"
