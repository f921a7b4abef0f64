"""
Test doubles and archive builders shared across the test modules.
"""

from __future__ import annotations

import io
import os
import tarfile
import zipfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

from leaf.adapters.filesystem import AtomicReplacer, OsReplacer
from leaf.adapters.releases import ReleaseSource
from leaf.core.models.release import Release, ReleaseAsset

BASE_TIME = datetime(2024, 1, 1, tzinfo=UTC)


# ── Archives ────────────────────────────────────────────────────


def _executable_script(body: bytes) -> bytes:
    return body if body.startswith(b"#!") else b"#!/bin/sh\n" + body


def build_tar(path: Path, files: dict[str, bytes], mode: str = "w:gz") -> Path:
    """Write a tarball holding ``files`` (archive path -> content)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, mode) as tar:
        for name, content in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(content))
    return path


def build_zip(path: Path, files: dict[str, bytes]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return path


def version_script(version: str) -> bytes:
    """A shell script that answers ``--version`` like leaf does."""
    return f'#!/bin/sh\necho "leaf, version {version}"\n'.encode()


def file_url(path: Path) -> str:
    return path.absolute().as_uri()


# ── Release sources ─────────────────────────────────────────────


def make_release(
    tag: str,
    *,
    days: int = 0,
    prerelease: bool = False,
    draft: bool = False,
    assets: dict[str, str] | None = None,
) -> Release:
    """A release published ``days`` after BASE_TIME with ``assets`` (name -> url)."""
    return Release(
        tag=tag,
        prerelease=prerelease,
        draft=draft,
        published_at=BASE_TIME + timedelta(days=days),
        assets=[ReleaseAsset(name=name, url=url) for name, url in (assets or {}).items()],
    )


class FakeReleaseSource(ReleaseSource):
    """In-memory release stream; counts calls so tests can assert no lookups."""

    def __init__(self, name: str, releases: list[Release] | None = None):
        self._name = name
        self.releases = list(releases or [])
        self.get_calls: list[str] = []
        self.list_calls = 0

    @property
    def name(self) -> str:
        return self._name

    def get_release(self, tag: str) -> Release | None:
        self.get_calls.append(tag)
        for release in self.releases:
            if release.tag == tag:
                return release
        return None

    def list_releases(self) -> list[Release]:
        self.list_calls += 1
        return list(self.releases)


# ── Replacers ───────────────────────────────────────────────────


class RecordingReplacer(OsReplacer):
    """Real renames, with a log of each call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Path, Path]] = []

    def set_aside(self, current: Path, previous: Path) -> None:
        self.calls.append(("set_aside", current, previous))
        super().set_aside(current, previous)

    def replace(self, new: Path, target: Path) -> None:
        self.calls.append(("replace", new, target))
        super().replace(new, target)


class FailingReplacer(AtomicReplacer):
    """Fails on the named step; the other step behaves like OsReplacer."""

    def __init__(self, fail_on: str):
        self.fail_on = fail_on
        self._real = OsReplacer()

    def set_aside(self, current: Path, previous: Path) -> None:
        if self.fail_on == "set_aside":
            raise OSError("simulated set-aside failure")
        self._real.set_aside(current, previous)

    def replace(self, new: Path, target: Path) -> None:
        if self.fail_on == "replace":
            raise OSError("simulated replace failure")
        self._real.replace(new, target)


def snapshot(root: Path) -> dict[str, bytes | str]:
    """Every file and link under ``root``: path -> content or link target."""
    state: dict[str, bytes | str] = {}
    if not root.exists():
        return state
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            path = Path(dirpath) / name
            rel = str(path.relative_to(root))
            if path.is_symlink():
                state[rel] = "-> " + os.readlink(path)
            elif path.is_file():
                state[rel] = path.read_bytes()
    return state
