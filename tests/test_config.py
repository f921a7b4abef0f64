"""
Tests for configuration loading — defaults, env overrides, config.yml.
"""

import textwrap
from pathlib import Path

import pytest
import yaml

from leaf.core.config.loader import (
    DEFAULT_REGISTRY_URL,
    ConfigError,
    default_config,
    load_config,
    save_config,
)


class TestDefaults:
    """Tests for the default layout."""

    def test_env_overrides(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("LEAF_HOME", str(tmp_path / "h"))
        monkeypatch.setenv("LEAF_BIN_DIR", str(tmp_path / "b"))
        cfg = default_config()
        assert cfg.install_dir == tmp_path / "h"
        assert cfg.bin_dir == tmp_path / "b"
        assert cfg.packages_dir == tmp_path / "h" / "packages"
        assert cfg.cache_dir == tmp_path / "h" / "cache"
        assert cfg.registry_url == DEFAULT_REGISTRY_URL

    def test_home_layout(self, monkeypatch, tmp_path: Path):
        monkeypatch.delenv("LEAF_HOME")
        monkeypatch.delenv("LEAF_BIN_DIR")
        monkeypatch.setattr(Path, "home", lambda: tmp_path)
        cfg = default_config()
        assert cfg.install_dir == tmp_path / ".local" / "leaf"
        assert cfg.bin_dir == tmp_path / ".local" / "bin"

    def test_derived_paths(self, tmp_path: Path):
        cfg = default_config(install_dir=tmp_path / "leaf", bin_dir=tmp_path / "bin")
        assert cfg.registry_path == tmp_path / "leaf" / "packages.json"
        assert cfg.self_binary == tmp_path / "bin" / "leaf"
        assert cfg.self_previous == tmp_path / "bin" / "leaf.old"
        assert cfg.version_file == tmp_path / "leaf" / ".version"

    def test_ensure_dirs(self, tmp_path: Path):
        cfg = default_config(install_dir=tmp_path / "leaf", bin_dir=tmp_path / "bin")
        cfg.ensure_dirs()
        for path in (cfg.install_dir, cfg.bin_dir, cfg.packages_dir, cfg.cache_dir):
            assert path.is_dir()


class TestLoadConfig:
    """Tests for reading config.yml."""

    def test_missing_file_writes_defaults(self, tmp_path: Path):
        cfg = load_config()
        assert cfg.config_path.is_file()
        data = yaml.safe_load(cfg.config_path.read_text())
        assert data["install_dir"] == str(tmp_path / "home" / "leaf")

    def test_file_overrides(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        path.write_text(textwrap.dedent(f"""\
            install_dir: {tmp_path / "custom"}
            registry_url: https://mirror.example.com/packages.json
        """))
        cfg = load_config(path)
        assert cfg.install_dir == tmp_path / "custom"
        assert cfg.packages_dir == tmp_path / "custom" / "packages"
        assert cfg.registry_url == "https://mirror.example.com/packages.json"

    def test_tilde_expanded(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        path = tmp_path / "config.yml"
        path.write_text("bin_dir: ~/mybin\n")
        assert load_config(path).bin_dir == tmp_path / "mybin"

    def test_round_trip(self, tmp_path: Path):
        cfg = default_config(install_dir=tmp_path / "leaf", bin_dir=tmp_path / "bin")
        save_config(cfg)
        assert load_config(cfg.config_path) == cfg

    @pytest.mark.parametrize("content", [
        "install_dir: [unclosed",
        "- just\n- a list\n",
        "install_dir: {nested: true}\n",
    ])
    def test_invalid(self, tmp_path: Path, content: str):
        path = tmp_path / "config.yml"
        path.write_text(content)
        with pytest.raises(ConfigError):
            load_config(path)
