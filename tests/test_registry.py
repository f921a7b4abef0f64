"""
Tests for the registry model and service — parsing, resolve, search, refresh.
"""

import json
from pathlib import Path

import pytest

from leaf.core.errors import DownloadError, PackageNotFound, ParseError, PlatformUnsupported, RegistryMissing
from leaf.core.models.registry import ArchiveFormat, LEGACY_PLATFORM_ID
from leaf.core.services import registry as registry_service

from tests.fakes import file_url

CATALOG = {
    "ripgrep": {
        "description": "Fast line-oriented search tool",
        "version": "14.1.0",
        "tags": ["search", "grep"],
        "platforms": {
            "linux-x86_64": {
                "url": "https://example.com/ripgrep-14.1.0-linux-x86_64.tar.gz",
                "type": "archive",
                "executables": [{"path": "ripgrep/rg", "name": "rg"}],
            },
            "darwin-aarch64": {
                "url": "https://example.com/ripgrep-14.1.0-darwin-aarch64.zip",
                "executables": ["ripgrep/rg"],
            },
        },
    },
    "fd": {
        "description": "A simple alternative to find",
        "version": "v9.0.0",
        "url": "https://example.com/fd-linux.tar.gz",
        "executables": "fd-v9.0.0/fd",
    },
    "jq": {
        "description": "Command-line JSON processor",
        "version": "1.7",
        "tags": None,
        "platforms": {
            "linux-x86_64": {
                "url": "https://example.com/jq-linux-amd64",
                "type": "binary",
                "executables": "jq",
            },
        },
    },
}


class TestLoad:
    """Tests for parsing registry documents."""

    def test_platform_aware_entry(self):
        registry = registry_service.load(json.dumps(CATALOG))
        rg = registry.get("ripgrep")
        assert rg is not None
        assert rg.tags == {"search", "grep"}
        target = rg.platforms["linux-x86_64"]
        assert target.executables[0].path_in_archive == "ripgrep/rg"
        assert target.executables[0].installed_name == "rg"
        assert target.archive_format == ArchiveFormat.TAR_GZ

    def test_installed_name_defaults_to_basename(self):
        registry = registry_service.load(json.dumps(CATALOG))
        spec = registry.get("ripgrep").platforms["darwin-aarch64"].executables[0]
        assert spec.installed_name == "rg"

    def test_flat_entry_becomes_legacy_platform(self):
        registry = registry_service.load(json.dumps(CATALOG))
        fd = registry.get("fd")
        assert list(fd.platforms) == [LEGACY_PLATFORM_ID]
        assert fd.platforms[LEGACY_PLATFORM_ID].executables[0].installed_name == "fd"

    def test_raw_binary_aliases(self):
        registry = registry_service.load(json.dumps(CATALOG))
        target = registry.get("jq").platforms["linux-x86_64"]
        assert target.archive_kind == "raw-binary"
        assert target.archive_format == ArchiveFormat.RAW
        assert registry.get("jq").tags == set()

    def test_bytes_input(self):
        registry = registry_service.load(json.dumps(CATALOG).encode())
        assert len(registry) == 3
        assert "fd" in registry

    @pytest.mark.parametrize("document", [
        "",
        "   \n",
        "<!DOCTYPE html><html><body>404</body></html>",
        "{not json",
        "[1, 2, 3]",
    ])
    def test_rejects_bad_documents(self, document: str):
        with pytest.raises(ParseError):
            registry_service.load(document)

    def test_rejects_zero_platforms(self):
        bad = {"tool": {"version": "1.0", "platforms": {}}}
        with pytest.raises(ParseError, match="tool"):
            registry_service.load(json.dumps(bad))

    def test_rejects_zero_executables(self):
        bad = {"tool": {"version": "1.0", "platforms": {
            "linux-x86_64": {"url": "https://x/t.tar.gz", "executables": []},
        }}}
        with pytest.raises(ParseError):
            registry_service.load(json.dumps(bad))

    def test_load_file_missing(self, tmp_path: Path):
        with pytest.raises(RegistryMissing, match="leaf update"):
            registry_service.load_file(tmp_path / "packages.json")


class TestResolve:
    """Tests for name + platform resolution."""

    def test_resolves_target(self):
        registry = registry_service.load(json.dumps(CATALOG))
        target = registry_service.resolve(registry, "ripgrep", "darwin-aarch64")
        assert target.archive_format == ArchiveFormat.ZIP

    def test_unknown_package(self):
        registry = registry_service.load(json.dumps(CATALOG))
        with pytest.raises(PackageNotFound):
            registry_service.resolve(registry, "nope", "linux-x86_64")

    def test_unsupported_platform_lists_available(self):
        registry = registry_service.load(json.dumps(CATALOG))
        with pytest.raises(PlatformUnsupported) as exc_info:
            registry_service.resolve(registry, "ripgrep", "windows-x86_64")
        assert exc_info.value.available == ["darwin-aarch64", "linux-x86_64"]


class TestFind:
    """Tests for search."""

    def test_matches_name_description_and_tags(self):
        registry = registry_service.load(json.dumps(CATALOG))
        assert [n for n, _ in registry_service.find(registry, "RIP")] == ["ripgrep"]
        assert [n for n, _ in registry_service.find(registry, "json")] == ["jq"]
        assert [n for n, _ in registry_service.find(registry, "grep")] == ["ripgrep"]

    def test_matches_on_tag_alone(self):
        catalog = dict(CATALOG, helix={
            "description": "A post-modern modal text tool",
            "version": "24.7",
            "tags": ["editor"],
            "platforms": {"linux-x86_64": {"url": "https://example.com/hx.tar.gz", "executables": "hx"}},
        })
        registry = registry_service.load(json.dumps(catalog))
        assert [n for n, _ in registry_service.find(registry, "EDIT")] == ["helix"]

    def test_results_ordered_by_name(self):
        registry = registry_service.load(json.dumps(CATALOG))
        names = [n for n, _ in registry_service.find(registry, "")]
        assert names == ["fd", "jq", "ripgrep"]

    def test_no_match(self):
        registry = registry_service.load(json.dumps(CATALOG))
        assert registry_service.find(registry, "zzz") == []


class TestRefresh:
    """Tests for replacing the on-disk registry."""

    def test_writes_validated_copy(self, tmp_path: Path):
        remote = tmp_path / "remote.json"
        remote.write_text(json.dumps(CATALOG))
        dest = tmp_path / "leaf" / "packages.json"

        registry = registry_service.refresh(file_url(remote), dest)

        assert len(registry) == 3
        assert json.loads(dest.read_text()) == CATALOG

    def test_invalid_document_keeps_previous_copy(self, tmp_path: Path):
        remote = tmp_path / "remote.json"
        remote.write_text("<html>moved</html>")
        dest = tmp_path / "packages.json"
        dest.write_text(json.dumps(CATALOG))

        with pytest.raises(ParseError):
            registry_service.refresh(file_url(remote), dest)
        assert json.loads(dest.read_text()) == CATALOG

    def test_unreachable_url(self, tmp_path: Path):
        with pytest.raises(DownloadError):
            registry_service.refresh(file_url(tmp_path / "missing.json"), tmp_path / "packages.json")


class TestPlatformId:
    """Tests for platform id detection."""

    @pytest.mark.parametrize("system, machine, expected", [
        ("Linux", "x86_64", "linux-x86_64"),
        ("Linux", "AMD64", "linux-x86_64"),
        ("Darwin", "arm64", "darwin-aarch64"),
        ("Linux", "aarch64", "linux-aarch64"),
    ])
    def test_normalizes(self, monkeypatch, system: str, machine: str, expected: str):
        monkeypatch.setattr(registry_service.platform, "system", lambda: system)
        monkeypatch.setattr(registry_service.platform, "machine", lambda: machine)
        assert registry_service.current_platform_id() == expected
