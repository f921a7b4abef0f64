"""
Shared test fixtures and configuration.
"""

import json
from pathlib import Path

import pytest

from leaf.core.config.loader import LeafConfig, default_config
from leaf.core.use_cases.context import LeafContext

PLATFORM = "linux-x86_64"


@pytest.fixture(autouse=True)
def _isolate_env(tmp_path: Path, monkeypatch):
    """Keep every test away from the real ~/.local tree and GitHub token."""
    monkeypatch.setenv("LEAF_HOME", str(tmp_path / "home" / "leaf"))
    monkeypatch.setenv("LEAF_BIN_DIR", str(tmp_path / "home" / "bin"))
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.delenv("LEAF_LOG_LEVEL", raising=False)
    monkeypatch.delenv("LEAF_LOG_FILE", raising=False)


@pytest.fixture
def config(tmp_path: Path) -> LeafConfig:
    """A LeafConfig rooted in tmp_path, with its directories created."""
    cfg = default_config(install_dir=tmp_path / "leaf", bin_dir=tmp_path / "bin")
    cfg.ensure_dirs()
    return cfg


@pytest.fixture
def context(config: LeafConfig) -> LeafContext:
    return LeafContext(config=config, platform_id=PLATFORM)


@pytest.fixture
def write_registry(config: LeafConfig):
    """Write a registry document to the config's registry path."""

    def _write(data: dict) -> Path:
        config.registry_path.write_text(json.dumps(data), encoding="utf-8")
        return config.registry_path

    return _write
