"""
Tests for the GitHub release source — parsing, pagination, error mapping.
"""

import io
import json
import urllib.error

import pytest

from leaf.adapters import releases
from leaf.adapters.releases import GitHubReleaseSource
from leaf.core.errors import DownloadError


def _release(tag: str, **extra) -> dict:
    data = {
        "tag_name": tag,
        "prerelease": False,
        "draft": False,
        "published_at": "2024-03-01T12:00:00Z",
        "assets": [{
            "name": f"tool-{tag}-linux-x86_64.tar.gz",
            "browser_download_url": f"https://dl.example/{tag}.tar.gz",
            "size": 42,
        }],
    }
    data.update(extra)
    return data


class FakeAPI:
    """Stands in for ``open_url``; serves canned bodies keyed by URL."""

    def __init__(self, responses: dict):
        self.responses = responses
        self.requests = []

    def __call__(self, request, timeout=None):
        self.requests.append(request)
        body = self.responses.get(request.full_url)
        if body is None:
            raise urllib.error.HTTPError(request.full_url, 404, "Not Found", {}, None)
        if isinstance(body, Exception):
            raise body
        if not isinstance(body, bytes):
            body = json.dumps(body).encode()
        return io.BytesIO(body)


@pytest.fixture
def api(monkeypatch):
    fake = FakeAPI({})
    monkeypatch.setattr(releases, "open_url", fake)
    return fake


BASE = "https://api.example/repos/owner/tool"


class TestGetRelease:
    """Tests for fetching a single tag."""

    def test_parses_release(self, api: FakeAPI):
        api.responses[f"{BASE}/releases/tags/v1.0"] = _release("v1.0")
        source = GitHubReleaseSource("owner/tool", api_base="https://api.example/")

        release = source.get_release("v1.0")

        assert release.tag == "v1.0"
        assert release.published_at.year == 2024
        assert release.published_at.tzinfo is not None
        assert [(a.name, a.size) for a in release.assets] == [("tool-v1.0-linux-x86_64.tar.gz", 42)]

    def test_missing_tag_is_none(self, api: FakeAPI):
        source = GitHubReleaseSource("owner/tool", api_base="https://api.example")
        assert source.get_release("v9.9") is None

    def test_token_sent_as_bearer(self, api: FakeAPI):
        api.responses[f"{BASE}/releases/tags/v1.0"] = _release("v1.0")
        GitHubReleaseSource("owner/tool", api_base="https://api.example", token="abc").get_release("v1.0")
        assert api.requests[0].get_header("Authorization") == "Bearer abc"

    def test_token_from_env(self, api: FakeAPI, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "from-env")
        api.responses[f"{BASE}/releases/tags/v1.0"] = _release("v1.0")
        GitHubReleaseSource("owner/tool", api_base="https://api.example").get_release("v1.0")
        assert api.requests[0].get_header("Authorization") == "Bearer from-env"

    def test_no_token_no_header(self, api: FakeAPI):
        api.responses[f"{BASE}/releases/tags/v1.0"] = _release("v1.0")
        GitHubReleaseSource("owner/tool", api_base="https://api.example").get_release("v1.0")
        assert api.requests[0].get_header("Authorization") is None


class TestListReleases:
    """Tests for listing every release."""

    def test_paginates_until_short_page(self, api: FakeAPI, monkeypatch):
        monkeypatch.setattr(releases, "_PAGE_SIZE", 2)
        api.responses[f"{BASE}/releases?per_page=2&page=1"] = [_release("v3"), _release("v2")]
        api.responses[f"{BASE}/releases?per_page=2&page=2"] = [_release("v1", prerelease=True)]
        source = GitHubReleaseSource("owner/tool", api_base="https://api.example")

        listed = source.list_releases()

        assert [r.tag for r in listed] == ["v3", "v2", "v1"]
        assert listed[2].prerelease
        assert len(api.requests) == 2

    def test_missing_timestamp(self, api: FakeAPI):
        api.responses[f"{BASE}/releases?per_page=100&page=1"] = [_release("v1", published_at=None)]
        source = GitHubReleaseSource("owner/tool", api_base="https://api.example")
        assert source.list_releases()[0].published_at is None

    def test_not_found_is_an_error(self, api: FakeAPI):
        source = GitHubReleaseSource("owner/tool", api_base="https://api.example")
        with pytest.raises(DownloadError, match="404"):
            source.list_releases()

    def test_invalid_json(self, api: FakeAPI):
        api.responses[f"{BASE}/releases?per_page=100&page=1"] = b"<html>rate limited</html>"
        source = GitHubReleaseSource("owner/tool", api_base="https://api.example")
        with pytest.raises(DownloadError, match="Invalid JSON"):
            source.list_releases()

    def test_unexpected_payload(self, api: FakeAPI):
        api.responses[f"{BASE}/releases?per_page=100&page=1"] = {"message": "oops"}
        source = GitHubReleaseSource("owner/tool", api_base="https://api.example")
        with pytest.raises(DownloadError, match="Unexpected"):
            source.list_releases()

    def test_server_error(self, api: FakeAPI):
        url = f"{BASE}/releases?per_page=100&page=1"
        api.responses[url] = urllib.error.HTTPError(url, 502, "Bad Gateway", {}, None)
        source = GitHubReleaseSource("owner/tool", api_base="https://api.example")
        with pytest.raises(DownloadError, match="502"):
            source.list_releases()
