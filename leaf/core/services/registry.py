"""
Registry service — parse, query and refresh the package catalog.

The core only ever reads the copy on disk; ``refresh`` is the one
operation that replaces it, and it validates the new document before
the old one is touched.
"""

from __future__ import annotations

import json
import logging
import os
import platform
import tempfile
from pathlib import Path

from pydantic import ValidationError

from leaf.adapters.http import fetch_bytes
from leaf.core.errors import DownloadError, PackageNotFound, ParseError, PlatformUnsupported, RegistryMissing
from leaf.core.models.registry import PackageDescriptor, PlatformTarget, Registry

logger = logging.getLogger(__name__)

# uname -m spellings → the spelling used in platform ids and asset names
_ARCH_ALIASES: dict[str, str] = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
    "armv8l": "aarch64",
    "i686": "i386",
}


def current_platform_id() -> str:
    """Platform id of this machine, e.g. ``linux-x86_64``."""
    system = platform.system().lower()
    machine = platform.machine().lower()
    return f"{system}-{_ARCH_ALIASES.get(machine, machine)}"


# ── Parsing ─────────────────────────────────────────────────────


def load(data: bytes | str) -> Registry:
    """Parse a registry document.

    Raises:
        ParseError: Empty, HTML, non-JSON, non-object, or an invalid entry.
    """
    text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
    stripped = text.lstrip()

    if not stripped:
        raise ParseError("Registry document is empty")

    # A wrong raw URL returns GitHub's HTML page with a 200
    if stripped[:15].lower().startswith(("<!doctype html", "<html")):
        raise ParseError("Registry document is HTML, not JSON (check the registry URL)")

    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        preview = stripped[:80].replace("\n", " ")
        raise ParseError(f"Invalid registry JSON: {e} (starts with {preview!r})") from e

    if not isinstance(raw, dict):
        raise ParseError(f"Registry must be a JSON object, got {type(raw).__name__}")

    packages: dict[str, PackageDescriptor] = {}
    for name, entry in raw.items():
        try:
            packages[name] = PackageDescriptor.model_validate(entry)
        except ValidationError as e:
            raise ParseError(f"Invalid registry entry '{name}': {e}") from e

    return Registry(packages=packages)


def load_file(path: Path) -> Registry:
    """Load the on-disk registry copy."""
    if not path.is_file():
        raise RegistryMissing(f"No package registry at {path} — run 'leaf update'")
    try:
        content = path.read_bytes()
    except OSError as e:
        raise ParseError(f"Cannot read {path}: {e}") from e
    registry = load(content)
    logger.debug("Loaded %d packages from %s", len(registry), path)
    return registry


# ── Queries ─────────────────────────────────────────────────────


def resolve(registry: Registry, name: str, platform_id: str) -> PlatformTarget:
    """The target for ``name`` on ``platform_id``.

    Raises:
        PackageNotFound: ``name`` is not in the registry.
        PlatformUnsupported: ``name`` exists but has no entry for the platform.
    """
    descriptor = registry.get(name)
    if descriptor is None:
        raise PackageNotFound(name)
    target = descriptor.platforms.get(platform_id)
    if target is None:
        raise PlatformUnsupported(name, platform_id, sorted(descriptor.platforms))
    return target


def find(registry: Registry, term: str) -> list[tuple[str, PackageDescriptor]]:
    """Case-insensitive substring search over name, description and tags."""
    needle = term.lower()
    found = []
    for name, descriptor in registry.packages.items():
        if (
            needle in name.lower()
            or needle in descriptor.description.lower()
            or any(needle in tag.lower() for tag in descriptor.tags)
        ):
            found.append((name, descriptor))
    return sorted(found, key=lambda item: item[0])


# ── Refresh ─────────────────────────────────────────────────────


def refresh(url: str, dest: Path) -> Registry:
    """Download the registry from ``url`` and replace ``dest`` atomically.

    The previous copy is kept if the download or validation fails.

    Raises:
        DownloadError: Network failure.
        ParseError: The downloaded document is not a valid registry.
    """
    logger.info("Fetching package registry from %s", url)
    content = fetch_bytes(url)
    registry = load(content)

    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=dest.parent, prefix=".registry_", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
        tmp.replace(dest)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        raise DownloadError(f"Cannot write registry to {dest}: {e}") from e

    logger.info("Registry updated: %d packages", len(registry))
    return registry
