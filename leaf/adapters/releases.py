"""
Release sources — where release metadata comes from.

The version resolver only talks to a ``ReleaseSource``; the concrete
transport (GitHub's releases API here) stays behind this interface so
resolution can be tested against in-memory fakes.
"""

from __future__ import annotations

import json
import logging
import os
import urllib.error
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any
from urllib.parse import quote

from leaf.adapters.http import build_request, open_url
from leaf.core.errors import DownloadError
from leaf.core.models.release import Release, ReleaseAsset

logger = logging.getLogger(__name__)

_PAGE_SIZE = 100
_MAX_PAGES = 10


class ReleaseSource(ABC):
    """Release-listing capability for one stream (a package or leaf itself)."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier of the stream, used in error messages."""

    @abstractmethod
    def get_release(self, tag: str) -> Release | None:
        """The release tagged exactly ``tag``, or None if there is none."""

    @abstractmethod
    def list_releases(self) -> list[Release]:
        """Every published release, in any order."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class GitHubReleaseSource(ReleaseSource):
    """Releases of a GitHub repository via the REST API.

    Args:
        repo: ``owner/name``.
        api_base: API root, overridable for GitHub Enterprise.
        token: Optional token; defaults to ``GITHUB_TOKEN`` from the env.
    """

    def __init__(
        self,
        repo: str,
        api_base: str = "https://api.github.com",
        token: str | None = None,
    ):
        self._repo = repo
        self._api_base = api_base.rstrip("/")
        self._token = token if token is not None else os.environ.get("GITHUB_TOKEN")

    @property
    def name(self) -> str:
        return self._repo

    def get_release(self, tag: str) -> Release | None:
        url = f"{self._api_base}/repos/{self._repo}/releases/tags/{quote(tag, safe='')}"
        data = self._get_json(url, missing_ok=True)
        if data is None:
            return None
        return _parse_release(data)

    def list_releases(self) -> list[Release]:
        releases: list[Release] = []
        for page in range(1, _MAX_PAGES + 1):
            url = (
                f"{self._api_base}/repos/{self._repo}/releases"
                f"?per_page={_PAGE_SIZE}&page={page}"
            )
            batch = self._get_json(url)
            if not isinstance(batch, list):
                raise DownloadError(f"Unexpected releases payload from {url}")
            releases.extend(_parse_release(item) for item in batch)
            if len(batch) < _PAGE_SIZE:
                break
        logger.debug("Fetched %d releases for %s", len(releases), self._repo)
        return releases

    def _get_json(self, url: str, *, missing_ok: bool = False) -> Any:
        request = build_request(
            url,
            accept="application/vnd.github+json",
            token=self._token,
        )
        logger.debug("GET %s", url)
        try:
            with open_url(request) as resp:
                body = resp.read()
        except urllib.error.HTTPError as e:
            if e.code == 404 and missing_ok:
                return None
            raise DownloadError(f"GitHub API returned HTTP {e.code} for {url}") from e
        except OSError as e:
            raise DownloadError(f"Read failed for {url}: {e}") from e

        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise DownloadError(f"Invalid JSON from {url}: {e}") from e


def _parse_release(data: dict[str, Any]) -> Release:
    """Map one GitHub release object onto the Release model."""
    published = data.get("published_at") or data.get("created_at")
    return Release(
        tag=data.get("tag_name", ""),
        prerelease=bool(data.get("prerelease", False)),
        draft=bool(data.get("draft", False)),
        published_at=_parse_timestamp(published),
        assets=[
            ReleaseAsset(
                name=asset.get("name", ""),
                url=asset.get("browser_download_url", ""),
                size=asset.get("size", 0) or 0,
            )
            for asset in data.get("assets", [])
        ],
    )


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable release timestamp: %r", value)
        return None
