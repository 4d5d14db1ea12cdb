from __future__ import annotations

import logging
import threading
import time
from datetime import datetime
from typing import NoReturn

from pastebin.domain.errors import StorageFailure
from pastebin.repositories.paste_repository import PasteStore
from pastebin.services.helpers import utc_now


logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60.0

_worker_started = False
_worker_lock = threading.Lock()


def run_purge_cycle(store: PasteStore, now: datetime | None = None) -> int:
    """Delete pastes that can no longer be served and return how many went."""

    purged = store.purge_unavailable(now or utc_now())
    if purged:
        logger.info(
            "Purge worker: deleted unavailable pastes",
            extra={
                "event": "purge_worker_deleted",
                "purged": purged,
                "correlation_id": "purge-worker",
            },
        )
    return purged


def _purge_loop(store: PasteStore, interval_seconds: float) -> NoReturn:
    """Background loop that periodically purges expired and exhausted pastes."""

    while True:
        try:
            run_purge_cycle(store)
        except StorageFailure:
            # Schema missing or database down; try again next cycle.
            logger.warning(
                "Purge worker: store unavailable; skipping cycle",
                extra={
                    "event": "purge_worker_store_error",
                    "correlation_id": "purge-worker",
                },
                exc_info=True,
            )
        except Exception:  # pragma: no cover - keep the daemon alive
            logger.exception(
                "Error in purge worker loop",
                extra={
                    "event": "purge_worker_error",
                    "correlation_id": "purge-worker",
                },
            )

        time.sleep(interval_seconds)


def start_purge_worker(
    store: PasteStore,
    interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
) -> bool:
    """
    Start the purge worker in a background thread.

    This function is idempotent and will only start a single worker thread.
    Returns ``True`` if this call started the thread.
    """

    global _worker_started
    with _worker_lock:
        if _worker_started:
            return False

        thread = threading.Thread(
            target=_purge_loop,
            args=(store, interval_seconds),
            name="purge-worker",
            daemon=True,
        )
        thread.start()
        _worker_started = True
        return True
