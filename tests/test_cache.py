"""
Tests for the download cache.
"""

import urllib.request
from pathlib import Path

import pytest

from leaf.core.errors import DownloadError
from leaf.core.services import cache as cache_module
from leaf.core.services.cache import SELF_KEY, CacheKey, DownloadCache

from tests.fakes import file_url

KEY = CacheKey("ripgrep", "14.1.0", "linux-x86_64")


class _TruncatedResponse:
    """Claims more bytes in Content-Length than its body holds."""

    def __init__(self, body: bytes, claimed: int):
        self._body = body
        self.headers = {"Content-Length": str(claimed)}

    def read(self, size: int = -1) -> bytes:
        chunk, self._body = self._body[:size], self._body[size:]
        return chunk

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class TestCacheKey:
    """Tests for cache file naming."""

    def test_distinct_keys_distinct_files(self):
        names = {
            CacheKey("a", "1", "linux-x86_64").filename,
            CacheKey("a", "2", "linux-x86_64").filename,
            CacheKey("a", "1", "linux-aarch64").filename,
            CacheKey(SELF_KEY, "1", "linux-x86_64").filename,
        }
        assert len(names) == 4

    def test_separators_are_sanitized(self):
        assert "/" not in CacheKey("a/b", "1", "x").filename


class TestFetch:
    """Tests for fetch-through behavior."""

    def test_miss_downloads_then_hit_is_offline(self, tmp_path: Path, monkeypatch):
        source = tmp_path / "asset.tar.gz"
        source.write_bytes(b"archive-bytes")
        cache = DownloadCache(tmp_path / "cache")

        path = cache.fetch(KEY, file_url(source))
        assert path.read_bytes() == b"archive-bytes"
        assert path == cache.path_for(KEY)

        def _no_network(*args, **kwargs):
            raise AssertionError("network used on a cache hit")

        monkeypatch.setattr(urllib.request, "urlopen", _no_network)
        assert cache.fetch(KEY, "https://unreachable.invalid/x") == path

    def test_empty_entry_is_a_miss(self, tmp_path: Path):
        source = tmp_path / "asset"
        source.write_bytes(b"fresh")
        cache = DownloadCache(tmp_path / "cache")
        cache.path_for(KEY).parent.mkdir(parents=True)
        cache.path_for(KEY).write_bytes(b"")

        assert cache.lookup(KEY) is None
        assert cache.fetch(KEY, file_url(source)).read_bytes() == b"fresh"

    def test_empty_download_rejected(self, tmp_path: Path):
        source = tmp_path / "empty"
        source.write_bytes(b"")
        cache = DownloadCache(tmp_path / "cache")

        with pytest.raises(DownloadError, match="empty"):
            cache.fetch(KEY, file_url(source))
        assert not cache.path_for(KEY).exists()
        assert list((tmp_path / "cache").iterdir()) == []

    def test_missing_source(self, tmp_path: Path):
        cache = DownloadCache(tmp_path / "cache")
        with pytest.raises(DownloadError):
            cache.fetch(KEY, file_url(tmp_path / "nope"))
        assert not cache.path_for(KEY).exists()

    def test_truncated_body_leaves_no_entry(self, tmp_path: Path, monkeypatch):
        cache = DownloadCache(tmp_path / "cache")
        monkeypatch.setattr(
            cache_module, "open_url", lambda request, timeout=None: _TruncatedResponse(b"abc", 10),
        )

        with pytest.raises(DownloadError, match="Incomplete"):
            cache.fetch(KEY, "https://example.com/asset")
        assert cache.lookup(KEY) is None
        assert list((tmp_path / "cache").iterdir()) == []

    def test_interrupt_leaves_no_partial_file(self, tmp_path: Path, monkeypatch):
        cache = DownloadCache(tmp_path / "cache")

        def _interrupted(self, url, out):
            out.write(b"partial")
            raise KeyboardInterrupt

        monkeypatch.setattr(DownloadCache, "_stream", _interrupted)
        with pytest.raises(KeyboardInterrupt):
            cache.fetch(KEY, "https://example.com/asset")
        assert list((tmp_path / "cache").iterdir()) == []


class TestMaintenance:
    """Tests for listing and clearing."""

    def test_entries_and_clear(self, tmp_path: Path):
        cache_dir = tmp_path / "cache"
        cache_dir.mkdir()
        (cache_dir / "a@1@linux-x86_64").write_bytes(b"x")
        (cache_dir / "b@1@linux-x86_64").write_bytes(b"y")
        (cache_dir / ".download_stale.part").write_bytes(b"z")
        cache = DownloadCache(cache_dir)

        assert [p.name for p in cache.entries()] == ["a@1@linux-x86_64", "b@1@linux-x86_64"]
        assert cache.clear() == 3
        assert cache.entries() == []

    def test_clear_missing_dir(self, tmp_path: Path):
        assert DownloadCache(tmp_path / "nothing").clear() == 0
