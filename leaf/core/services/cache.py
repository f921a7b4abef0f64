"""
Download cache — archives keyed by (package, version, platform).

A cached file is trusted only if it exists and is non-empty.  Downloads
stream into a temp file inside the cache root and are renamed onto the
final name only after the body was read completely, so the final path
never holds a partial archive — not even after a crash or Ctrl-C.
Entries are never evicted automatically.
"""

from __future__ import annotations

import logging
import os
import tempfile
import urllib.error
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO

from leaf.adapters.http import build_request, open_url
from leaf.core.errors import DownloadError

logger = logging.getLogger(__name__)

SELF_KEY = "self"

_CHUNK = 64 * 1024
_TEMP_PREFIX = ".download_"
_TEMP_SUFFIX = ".part"


def _safe(part: str) -> str:
    return part.replace(os.sep, "_").replace("@", "_") or "_"


@dataclass(frozen=True)
class CacheKey:
    """Identity of one cached archive."""

    name: str  # package name, or SELF_KEY for leaf's own releases
    version: str
    platform_id: str

    @property
    def filename(self) -> str:
        return f"{_safe(self.name)}@{_safe(self.version)}@{_safe(self.platform_id)}"


class DownloadCache:
    """Fetch-through cache rooted at ``cache_dir``."""

    def __init__(self, cache_dir: Path):
        self._cache_dir = cache_dir

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    def path_for(self, key: CacheKey) -> Path:
        return self._cache_dir / key.filename

    def lookup(self, key: CacheKey) -> Path | None:
        """The cached archive for ``key`` if it is usable, else None."""
        path = self.path_for(key)
        try:
            if path.is_file() and path.stat().st_size > 0:
                return path
        except OSError:
            pass
        return None

    def fetch(self, key: CacheKey, url: str) -> Path:
        """Return the archive for ``key``, downloading ``url`` on a miss.

        Raises:
            DownloadError: Network or I/O failure, empty or truncated body.
        """
        cached = self.lookup(key)
        if cached is not None:
            logger.info("Using cached %s", cached.name)
            return cached

        final = self.path_for(key)
        self._cache_dir.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=self._cache_dir, prefix=_TEMP_PREFIX, suffix=_TEMP_SUFFIX)
        tmp = Path(tmp_path)
        try:
            with os.fdopen(fd, "wb") as out:
                written, expected = self._stream(url, out)

            if written == 0:
                raise DownloadError(f"Downloaded file from {url} is empty")
            if expected is not None and written != expected:
                raise DownloadError(
                    f"Incomplete download from {url}: got {written} of {expected} bytes"
                )

            tmp.replace(final)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise

        logger.info("Downloaded %s (%s)", final.name, format_size(written))
        return final

    def entries(self) -> list[Path]:
        """Cached archives, sorted by name."""
        if not self._cache_dir.is_dir():
            return []
        return sorted(
            p for p in self._cache_dir.iterdir()
            if p.is_file() and not p.name.startswith(_TEMP_PREFIX)
        )

    def clear(self) -> int:
        """Delete every entry and leftover temp file. Returns how many."""
        if not self._cache_dir.is_dir():
            return 0
        removed = 0
        for path in self._cache_dir.iterdir():
            if path.is_file() or path.is_symlink():
                path.unlink(missing_ok=True)
                removed += 1
        logger.info("Cleared %d cached file(s) from %s", removed, self._cache_dir)
        return removed

    # ── Internals ───────────────────────────────────────────────

    def _stream(self, url: str, out: BinaryIO) -> tuple[int, int | None]:
        """Copy the response body for ``url`` into ``out``.

        Returns:
            (bytes written, Content-Length or None if the server sent none).
        """
        logger.info("Downloading %s", url)
        request = build_request(url)
        try:
            with open_url(request) as resp:
                expected = _content_length(resp)
                written = 0
                last_progress = -1
                while True:
                    chunk = resp.read(_CHUNK)
                    if not chunk:
                        break
                    out.write(chunk)
                    written += len(chunk)

                    if expected:
                        pct = written * 100 // expected
                        if pct >= last_progress + 10:
                            last_progress = pct
                            logger.debug(
                                "Download progress: %d%% (%s / %s)",
                                pct, format_size(written), format_size(expected),
                            )
        except urllib.error.HTTPError as e:
            raise DownloadError(f"HTTP {e.code} downloading {url}: {e.reason}") from e
        except OSError as e:
            raise DownloadError(f"Download failed for {url}: {e}") from e

        return written, expected


def _content_length(resp: Any) -> int | None:
    value = resp.headers.get("Content-Length") if resp.headers else None
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def format_size(size: int) -> str:
    """Human-readable byte count."""
    amount = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if amount < 1024:
            return f"{amount:.0f} {unit}" if unit == "B" else f"{amount:.1f} {unit}"
        amount /= 1024
    return f"{amount:.1f} TB"
