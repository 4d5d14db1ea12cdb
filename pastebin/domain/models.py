from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, Text, inspect
from sqlalchemy.orm import Mapped, mapped_column, validates

from pastebin.db import Base
from pastebin.services.helpers import as_utc, utc_now


IMMUTABLE_FIELDS = ("content", "created_at", "expires_at", "max_views")


def generate_paste_id() -> str:
    """Return a fresh 128-bit identifier drawn from ``os.urandom``."""
    return str(uuid.uuid4())


class Paste(Base):
    """Paste entity persisted via SQLAlchemy."""

    __tablename__ = "pastes"
    __table_args__ = (
        CheckConstraint(
            "view_count >= 0",
            name="ck_pastes_view_count_non_negative",
        ),
        CheckConstraint(
            "max_views IS NULL OR max_views >= 0",
            name="ck_pastes_max_views_non_negative",
        ),
        Index("ix_pastes_expires_at", "expires_at"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_paste_id,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    max_views: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    view_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )

    @validates(*IMMUTABLE_FIELDS)
    def _validate_immutable(self, key: str, value: Any) -> Any:
        """
        Enforce that a paste's payload and limits never change once persisted.

        Values can be set freely on new instances; any later attempt to change
        them raises an error. ``view_count`` is only moved by the store's
        atomic increment statements.
        """

        if inspect(self).has_identity and key in self.__dict__:
            if self.__dict__[key] != value:
                raise ValueError(f"Paste {key} is immutable and cannot be modified.")
        return value


@dataclass(frozen=True)
class PasteRecord:
    """Snapshot of a persisted paste as returned by the store."""

    id: str
    content: str
    created_at: datetime
    expires_at: Optional[datetime]
    max_views: Optional[int]
    view_count: int

    @classmethod
    def from_model(cls, paste: Paste) -> "PasteRecord":
        return cls(
            id=paste.id,
            content=paste.content,
            created_at=as_utc(paste.created_at),
            expires_at=as_utc(paste.expires_at) if paste.expires_at is not None else None,
            max_views=paste.max_views,
            view_count=paste.view_count,
        )
