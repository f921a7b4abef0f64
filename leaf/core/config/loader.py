"""
Configuration loader — reads config.yml into a LeafConfig.

The config names the four filesystem roots every core operation works
against (install root, bin dir, packages dir, cache dir) plus the
endpoints used for ``update`` and ``self-update``.  Nothing in the core
discovers these paths on its own; they are threaded through every call.

Resolution order for the defaults:
    LEAF_HOME / LEAF_BIN_DIR env vars  >  ~/.local/leaf, ~/.local/bin

Values present in config.yml override the defaults.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ValidationError, field_validator

from leaf.core.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.yml"

DEFAULT_REGISTRY_URL = "https://raw.githubusercontent.com/ktauchathuranga/leaf/main/packages.json"
DEFAULT_SELF_REPO = "ktauchathuranga/leaf"
DEFAULT_GITHUB_API = "https://api.github.com"


class LeafConfig(BaseModel):
    """Filesystem layout and endpoints for one leaf installation."""

    install_dir: Path
    bin_dir: Path
    packages_dir: Path
    cache_dir: Path

    registry_url: str = DEFAULT_REGISTRY_URL
    self_repo: str = DEFAULT_SELF_REPO
    self_executable: str = "leaf"
    github_api: str = DEFAULT_GITHUB_API

    @field_validator("install_dir", "bin_dir", "packages_dir", "cache_dir", mode="before")
    @classmethod
    def _expand(cls, value: Any) -> Any:
        if isinstance(value, str):
            return Path(value).expanduser()
        return value

    # ── Derived paths ───────────────────────────────────────────

    @property
    def config_path(self) -> Path:
        return self.install_dir / CONFIG_FILE

    @property
    def registry_path(self) -> Path:
        return self.install_dir / "packages.json"

    @property
    def audit_path(self) -> Path:
        return self.install_dir / "audit.ndjson"

    @property
    def version_file(self) -> Path:
        return self.install_dir / ".version"

    @property
    def self_binary(self) -> Path:
        """Canonical path of the leaf executable."""
        return self.bin_dir / self.self_executable

    @property
    def self_previous(self) -> Path:
        """Recovery copy left behind by the last self-update."""
        return self.bin_dir / f"{self.self_executable}.old"

    def ensure_dirs(self) -> None:
        """Create the four roots if missing."""
        for directory in (self.install_dir, self.bin_dir, self.packages_dir, self.cache_dir):
            directory.mkdir(parents=True, exist_ok=True)


def default_config(install_dir: Path | None = None, bin_dir: Path | None = None) -> LeafConfig:
    """Build the default layout, honoring LEAF_HOME / LEAF_BIN_DIR."""
    home = Path.home()
    if install_dir is None:
        env_home = os.environ.get("LEAF_HOME")
        install_dir = Path(env_home).expanduser() if env_home else home / ".local" / "leaf"
    if bin_dir is None:
        env_bin = os.environ.get("LEAF_BIN_DIR")
        bin_dir = Path(env_bin).expanduser() if env_bin else home / ".local" / "bin"
    return LeafConfig(
        install_dir=install_dir,
        bin_dir=bin_dir,
        packages_dir=install_dir / "packages",
        cache_dir=install_dir / "cache",
    )


def load_config(path: Path | None = None) -> LeafConfig:
    """Load the configuration, creating it with defaults if absent.

    Args:
        path: Explicit config file. Defaults to ``<install_dir>/config.yml``.

    Returns:
        Validated LeafConfig.

    Raises:
        ConfigError: If the file exists but is unreadable or invalid.
    """
    base = default_config()
    if path is None:
        path = base.config_path

    if not path.is_file():
        logger.info("No config at %s — writing defaults", path)
        save_config(base, path)
        return base

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # Sub-directories follow a relocated install_dir unless set explicitly
    install_dir = data.get("install_dir")
    bin_dir = data.get("bin_dir")
    defaults = default_config(
        install_dir=Path(install_dir).expanduser() if isinstance(install_dir, str) and install_dir else None,
        bin_dir=Path(bin_dir).expanduser() if isinstance(bin_dir, str) and bin_dir else None,
    )

    try:
        return LeafConfig.model_validate({**defaults.model_dump(), **data})
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e


def save_config(config: LeafConfig, path: Path | None = None) -> None:
    """Write the config as YAML (atomic: temp file, then rename)."""
    path = path or config.config_path
    path.parent.mkdir(parents=True, exist_ok=True)

    content = yaml.safe_dump(config.model_dump(mode="json"), sort_keys=False)

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".config_", suffix=".tmp")
    os.close(fd)
    tmp = Path(tmp_path)
    try:
        tmp.write_text(content, encoding="utf-8")
        tmp.replace(path)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        raise ConfigError(f"Cannot write {path}: {e}") from e
