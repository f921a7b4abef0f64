"""
HTTP helpers — thin wrappers over ``urllib.request``.

Every outbound request carries the leaf User-Agent (GitHub rejects
anonymous agents).  No timeout is imposed beyond the transport default
unless a caller passes one.
"""

from __future__ import annotations

import logging
import urllib.error
import urllib.request
from typing import Any

from leaf import __version__
from leaf.core.errors import DownloadError

logger = logging.getLogger(__name__)

USER_AGENT = f"leaf-package-manager/{__version__}"


def build_request(
    url: str,
    *,
    accept: str | None = None,
    token: str | None = None,
) -> urllib.request.Request:
    """Build a GET request with the standard headers."""
    headers = {"User-Agent": USER_AGENT}
    if accept:
        headers["Accept"] = accept
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return urllib.request.Request(url, headers=headers)


def open_url(request: urllib.request.Request, timeout: float | None = None) -> Any:
    """Open a request, translating transport failures into DownloadError.

    HTTPError is re-raised untouched so callers can branch on the code.
    """
    try:
        if timeout is None:
            return urllib.request.urlopen(request)
        return urllib.request.urlopen(request, timeout=timeout)
    except urllib.error.HTTPError:
        raise
    except (urllib.error.URLError, OSError, ValueError) as e:
        raise DownloadError(f"Cannot reach {request.full_url}: {e}") from e


def fetch_bytes(url: str, *, accept: str | None = None, token: str | None = None) -> bytes:
    """GET a URL and return the full body."""
    request = build_request(url, accept=accept, token=token)
    logger.debug("GET %s", url)
    try:
        with open_url(request) as resp:
            return resp.read()
    except urllib.error.HTTPError as e:
        raise DownloadError(f"HTTP {e.code} fetching {url}: {e.reason}") from e
    except OSError as e:
        raise DownloadError(f"Read failed for {url}: {e}") from e
