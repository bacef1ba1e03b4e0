"""Batch MP3 Converter - Retention sweep.

Evicts storage entries older than the retention threshold from both roots.
Cleanup is time-based only: a session's completion state does not matter.

The sweeper is a plain object; batchconv.huey_app runs it on an hourly huey
periodic task, the API runs it once at startup, and tests call sweep()
directly.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from batchconv.config import RETENTION_MAX_AGE_SECONDS
from batchconv.storage import StorageKind

if TYPE_CHECKING:
    from batchconv.storage import StorageArea

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """Removes expired entries from the storage area."""

    def __init__(
        self,
        storage: StorageArea,
        max_age_seconds: float = RETENTION_MAX_AGE_SECONDS,
        kinds: Iterable[StorageKind] = (StorageKind.INBOUND, StorageKind.OUTBOUND),
    ):
        self.storage = storage
        self.max_age_seconds = max_age_seconds
        self.kinds = tuple(kinds)

    def sweep(self, now: float | None = None) -> dict[str, int]:
        """Run one sweep over every configured root.

        Never raises: a failing root is logged and reported as 0 removals,
        so a recurring schedule keeps running.

        Args:
            now: Reference time (epoch seconds); defaults to the current time.

        Returns:
            Mapping of storage kind to number of entries removed.
        """
        removed: dict[str, int] = {}
        for kind in self.kinds:
            try:
                removed[kind.value] = self.storage.sweep_older_than(
                    kind, self.max_age_seconds, now=now
                )
            except Exception:
                logger.exception("Retention sweep failed for %s root", kind.value)
                removed[kind.value] = 0

        logger.info("Retention sweep finished: %s", removed)
        return removed


__all__ = ["RetentionSweeper"]
