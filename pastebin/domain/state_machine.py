from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional, Protocol

from pastebin.services.helpers import as_utc


class PasteState(str, enum.Enum):
    """
    Lifecycle state of a paste, derived on every access and never stored.

    ``EXPIRED`` and ``EXHAUSTED`` are terminal: time only moves forward and
    the view counter only grows.
    """

    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    EXHAUSTED = "EXHAUSTED"


class GatedPaste(Protocol):
    expires_at: Optional[datetime]
    max_views: Optional[int]
    view_count: int


def evaluate_state(paste: GatedPaste, now: datetime) -> PasteState:
    """
    Derive the lifecycle state of ``paste`` at ``now``.

    - Time expiry is exclusive at the instant: ``now >= expires_at`` is expired.
    - View exhaustion uses the pre-increment ``view_count``.
    - When both apply, ``EXPIRED`` wins.
    """

    if paste.expires_at is not None and as_utc(now) >= as_utc(paste.expires_at):
        return PasteState.EXPIRED
    if paste.max_views is not None and paste.view_count >= paste.max_views:
        return PasteState.EXHAUSTED
    return PasteState.ACTIVE


def is_accessible(paste: GatedPaste, now: datetime) -> bool:
    return evaluate_state(paste, now) is PasteState.ACTIVE


def remaining_views(max_views: Optional[int], view_count: int) -> Optional[int]:
    """Views left after ``view_count`` accesses; ``None`` means unlimited."""
    if max_views is None:
        return None
    return max(0, max_views - view_count)
