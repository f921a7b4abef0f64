"""
Filesystem replacement capability for self-update.

The Self-Updater never renames files itself; it asks an AtomicReplacer.
``OsReplacer`` is the real one.  Tests substitute recorders and
replacers that fail on a chosen step.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger(__name__)


class AtomicReplacer(ABC):
    """Two-step binary swap within one directory."""

    @abstractmethod
    def set_aside(self, current: Path, previous: Path) -> None:
        """Preserve ``current`` at ``previous``.

        After this returns, ``previous`` holds the old binary.  Raises
        OSError on failure.
        """

    @abstractmethod
    def replace(self, new: Path, target: Path) -> None:
        """Atomically move ``new`` onto ``target``. Raises OSError."""


class OsReplacer(AtomicReplacer):
    """POSIX rename semantics via ``os.link`` / ``os.replace``.

    ``set_aside`` hard-links rather than renames when it can, so the
    canonical path keeps pointing at the old binary until ``replace``
    swaps in the new one.
    """

    def set_aside(self, current: Path, previous: Path) -> None:
        try:
            os.link(current, previous)
            logger.debug("Hard-linked %s -> %s", current, previous)
        except OSError as e:
            logger.debug("Hard link unavailable (%s), renaming instead", e)
            os.replace(current, previous)

    def replace(self, new: Path, target: Path) -> None:
        os.replace(new, target)
        logger.debug("Replaced %s", target)
