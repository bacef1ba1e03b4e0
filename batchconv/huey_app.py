"""Batch MP3 Converter - Huey task queue configuration.

Huey with a SQLite backend holds the deferred work that outlives a request:
- delayed removal of a session's inbound/outbound directory
- the hourly retention sweep (periodic task)

How to run:
1. Start the API:
   uvicorn services.convert_api.main:app

2. Start the Huey consumer (runs scheduled cleanups and the hourly sweep):
   huey_consumer batchconv.huey_app.huey

Stopping the consumer stops the sweep. Scheduled removals that are still
pending stay in the SQLite schedule and run as soon as the consumer starts
again; a removal can be cancelled before then via the returned Result's
revoke().
"""

from __future__ import annotations

import logging
from pathlib import Path

from huey import SqliteHuey, crontab

from batchconv.config import HUEY_DB_PATH, QUEUE_DIR, RETENTION_SWEEP_CRON_MINUTE
from batchconv.retention import RetentionSweeper
from batchconv.storage import StorageArea, StorageKind

logger = logging.getLogger(__name__)


def _ensure_queue_dir() -> None:
    """Ensure the queue directory exists."""
    Path(QUEUE_DIR).mkdir(parents=True, exist_ok=True)


# Ensure queue directory exists before creating Huey instance
_ensure_queue_dir()

huey = SqliteHuey(
    name="batchconv",
    filename=str(HUEY_DB_PATH),
    immediate=False,  # Tasks queued for consumer processing
)


@huey.task()
def remove_session_dir_task(session_id: str, kind: str) -> bool:
    """Huey task removing one session directory.

    Idempotent: returns False when the directory was already gone (for
    example removed by the retention sweep first).

    Args:
        session_id: Session identifier.
        kind: "inbound" or "outbound".

    Returns:
        True if something was removed.
    """
    storage = StorageArea.from_config()
    removed = storage.remove_session(session_id, StorageKind(kind))
    logger.info(
        "Deferred %s cleanup for session_id=%s: %s",
        kind,
        session_id,
        "removed" if removed else "already gone",
    )
    return removed


@huey.periodic_task(crontab(minute=RETENTION_SWEEP_CRON_MINUTE))
def retention_sweep_task() -> dict:
    """Hourly retention sweep over both storage roots.

    RetentionSweeper.sweep() never raises, so the schedule keeps running
    after a bad tick.
    """
    sweeper = RetentionSweeper(StorageArea.from_config())
    return sweeper.sweep()


class HueyCleanupScheduler:
    """CleanupScheduler that enqueues delayed huey tasks."""

    def schedule_removal(self, session_id: str, kind: StorageKind, delay_seconds: float):
        """Enqueue a delayed directory removal.

        Returns:
            The huey Result for the scheduled task; result.revoke() cancels it.
        """
        logger.info(
            "Scheduling %s cleanup: session_id=%s, delay=%ss",
            StorageKind(kind).value,
            session_id,
            delay_seconds,
        )
        return remove_session_dir_task.schedule(
            (session_id, StorageKind(kind).value),
            delay=delay_seconds,
        )


__all__ = [
    "huey",
    "remove_session_dir_task",
    "retention_sweep_task",
    "HueyCleanupScheduler",
]
