from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from pastebin.domain.lifecycle import LifecycleEngine, NotAccessible
from pastebin.observability import get_correlation_id
from pastebin.repositories.paste_repository import PasteStore
from pastebin.services.helpers import isoformat_utc


logger = logging.getLogger(__name__)


class PasteError(Exception):
    """Base class for paste-related errors."""


class InvalidPasteParameters(PasteError):
    """Raised when creating a paste with invalid parameters."""


class PasteUnavailableError(PasteError):
    """
    Raised when a paste cannot be served.

    Covers missing, expired and view-exhausted pastes alike; the message never
    says which.
    """


@dataclass
class PasteService:
    """
    Application service coordinating paste use cases.

    Receives the store explicitly and delegates access gating to the
    ``LifecycleEngine``. Returns plain dict DTOs.
    """

    store: PasteStore
    engine: LifecycleEngine = field(init=False)

    def __post_init__(self) -> None:
        self.engine = LifecycleEngine(self.store)

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------
    def create_paste(
        self,
        *,
        content: str,
        now: datetime,
        ttl_seconds: Optional[int] = None,
        max_views: Optional[int] = None,
    ) -> dict[str, Any]:
        """
        Create a new paste.

        ``expires_at`` is ``now + ttl_seconds`` when a TTL is given and absent
        otherwise. Request shape is validated upstream; these checks only
        guard direct callers.
        """
        if not content or not content.strip():
            raise InvalidPasteParameters("content cannot be empty")
        if ttl_seconds is not None and ttl_seconds < 1:
            raise InvalidPasteParameters("ttl_seconds must be an integer >= 1")
        if max_views is not None and max_views < 1:
            raise InvalidPasteParameters("max_views must be an integer >= 1")

        expires_at = now + timedelta(seconds=ttl_seconds) if ttl_seconds is not None else None

        paste_id = self.store.create(
            content,
            expires_at,
            max_views,
            created_at=now,
        )
        logger.info(
            "Paste created",
            extra={
                "event": "paste_created",
                "paste_id": paste_id,
                "correlation_id": get_correlation_id(),
            },
        )
        return {
            "id": paste_id,
            "expires_at": isoformat_utc(expires_at),
            "max_views": max_views,
        }

    # -------------------------------------------------------------------------
    # Retrieval / viewing
    # -------------------------------------------------------------------------
    def access_paste(self, paste_id: str, *, now: datetime) -> dict[str, Any]:
        """
        Serve a paste and count the view.

        Raises ``PasteUnavailableError`` when the paste is missing, expired or
        out of views, and ``StorageFailure`` when the store cannot answer.
        """
        outcome = self.engine.access(paste_id, now)
        if isinstance(outcome, NotAccessible):
            logger.info(
                "Paste not accessible",
                extra={
                    "event": "paste_access_denied",
                    "paste_id": paste_id,
                    "correlation_id": get_correlation_id(),
                },
            )
            raise PasteUnavailableError("Paste not found")

        logger.info(
            "Paste access successful",
            extra={
                "event": "paste_access_success",
                "paste_id": paste_id,
                "remaining_views": outcome.remaining_views,
                "correlation_id": get_correlation_id(),
            },
        )
        return {
            "content": outcome.content,
            "remaining_views": outcome.remaining_views,
            "expires_at": isoformat_utc(outcome.expires_at),
        }
