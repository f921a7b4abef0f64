"""
Audit ledger — append-only operation history.

Every install, upgrade, removal, registry update and self-update
appends one JSON line to ``<install_dir>/audit.ndjson``.  Lines are never
rewritten; ``leaf history`` shows the tail.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from collections.abc import Iterator
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


class AuditStatus(StrEnum):
    OK = "ok"
    SKIPPED = "skipped"
    FAILED = "failed"


def _now() -> str:
    return datetime.now(UTC).isoformat()


class AuditEntry(BaseModel):
    """One ledger line."""

    timestamp: str = Field(default_factory=_now)
    operation: str = ""            # install, upgrade, remove, update, self-update
    target: str = ""               # package name, "self", or registry URL
    status: str = AuditStatus.OK.value

    from_version: str | None = None
    to_version: str | None = None
    platform_id: str = ""

    error: str = ""
    context: dict[str, Any] = Field(default_factory=dict)

    def to_line(self) -> str:
        return json.dumps(self.model_dump(mode="json"), ensure_ascii=False) + "\n"


class AuditWriter:
    """NDJSON ledger at ``path``; the file appears on first write.

    Write failures are logged and swallowed so a finished operation is
    never reported as failed because of its ledger line.
    """

    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as ledger:
                ledger.write(entry.to_line())
        except OSError as e:
            logger.error("Could not append to %s: %s", self._path, e)
            return
        logger.debug("audit: %s %s -> %s", entry.operation, entry.target, entry.status)

    def record(
        self,
        operation: str,
        target: str,
        status: str = AuditStatus.OK,
        **fields: Any,
    ) -> AuditEntry:
        """Build an entry from keyword fields and append it."""
        entry = AuditEntry(operation=operation, target=target, status=str(status), **fields)
        self.write(entry)
        return entry

    def iter_entries(self) -> Iterator[AuditEntry]:
        """Entries oldest first, skipping lines that do not parse."""
        try:
            ledger = self._path.open(encoding="utf-8")
        except FileNotFoundError:
            return
        except OSError as e:
            logger.error("Could not read %s: %s", self._path, e)
            return

        with ledger:
            for number, raw in enumerate(ledger, start=1):
                if not raw.strip():
                    continue
                try:
                    yield AuditEntry.model_validate_json(raw)
                except ValidationError as e:
                    logger.warning("%s:%d is not a valid entry (%s)", self._path.name, number, e.error_count())

    def read_all(self) -> list[AuditEntry]:
        return list(self.iter_entries())

    def read_recent(self, n: int = 20) -> list[AuditEntry]:
        """The last ``n`` entries, oldest first."""
        if n <= 0:
            return []
        return list(deque(self.iter_entries(), maxlen=n))
