from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol, Union

from pastebin.domain.errors import PasteRecordNotFound
from pastebin.domain.models import PasteRecord
from pastebin.domain.state_machine import is_accessible, remaining_views


class RecordStore(Protocol):
    """Store operations the lifecycle engine relies on."""

    def fetch(self, paste_id: str) -> Optional[PasteRecord]: ...

    def increment_view_count(self, paste_id: str) -> int: ...


@dataclass(frozen=True)
class PasteView:
    """A successful access: the content and the views left after it."""

    content: str
    remaining_views: Optional[int]
    expires_at: Optional[datetime] = None


class NotAccessible:
    """
    Outcome for a paste that cannot be served.

    Missing, time-expired and view-exhausted pastes all map to the single
    ``NOT_ACCESSIBLE`` instance so callers cannot tell them apart.
    """

    _instance: Optional["NotAccessible"] = None

    def __new__(cls) -> "NotAccessible":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOT_ACCESSIBLE"


NOT_ACCESSIBLE = NotAccessible()

AccessOutcome = Union[PasteView, NotAccessible]


class LifecycleEngine:
    """
    Gatekeeper for paste accesses.

    ``access`` checks accessibility against the pre-increment view count and
    only then asks the store for an atomic increment. The check and the
    increment are two separate store calls: when several requests race at the
    view limit, each one that passed the check is served, so a paste can be
    over-served by at most the number of concurrent racers. The increment
    itself is linearizable, so the counter never loses a view.

    The engine neither logs nor retries. Storage errors, including
    indeterminate increments, propagate to the caller unchanged.
    """

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def access(self, paste_id: str, now: datetime) -> AccessOutcome:
        record = self._store.fetch(paste_id)
        if record is None or not is_accessible(record, now):
            return NOT_ACCESSIBLE

        try:
            new_count = self._store.increment_view_count(record.id)
        except PasteRecordNotFound:
            # Row deleted between fetch and increment.
            return NOT_ACCESSIBLE

        return PasteView(
            content=record.content,
            remaining_views=remaining_views(record.max_views, new_count),
            expires_at=record.expires_at,
        )
