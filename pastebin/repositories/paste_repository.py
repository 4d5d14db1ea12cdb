from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Optional

from sqlalchemy import Delete, Select, Update, delete, or_, select, text, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from pastebin.domain.errors import (
    IndeterminateIncrement,
    PasteRecordNotFound,
    StorageFailure,
)
from pastebin.domain.models import Paste, PasteRecord
from pastebin.observability import get_correlation_id
from pastebin.services.helpers import as_utc


logger = logging.getLogger(__name__)


class IncrementStrategy(str, enum.Enum):
    AUTO = "auto"
    RETURNING = "returning"
    LOCKING = "locking"


class PasteRepository:
    """
    Repository for Paste rows.

    All SQL for pastes goes through this class. It works inside a session
    owned by the caller; committing and rolling back is the caller's job.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def create_paste(
        self,
        *,
        content: str,
        expires_at: Optional[datetime] = None,
        max_views: Optional[int] = None,
        created_at: Optional[datetime] = None,
    ) -> Paste:
        """
        Create and persist a new Paste with ``view_count = 0``.

        Note: Paste content and limits are set only at creation time and are
        not exposed for updates via this repository.
        """

        paste = Paste(
            content=content,
            expires_at=as_utc(expires_at) if expires_at is not None else None,
            max_views=max_views,
            view_count=0,
        )
        if created_at is not None:
            paste.created_at = as_utc(created_at)
        self._session.add(paste)
        # Flush so that generated primary key and defaults are populated.
        self._session.flush()
        return paste

    def get_paste_by_id(self, paste_id: str) -> Optional[Paste]:
        """Return a Paste by its id, or ``None`` if not found."""

        stmt: Select[tuple[Paste]] = select(Paste).where(Paste.id == paste_id)
        return self._session.execute(stmt).scalar_one_or_none()

    def increment_view_count_returning(self, paste_id: str) -> int:
        """
        Atomically increment the view count with a single statement.

        Returns the new ``view_count`` value.
        Raises ``PasteRecordNotFound`` if no Paste with the given id exists.
        """

        stmt: Update = (
            update(Paste)
            .where(Paste.id == paste_id)
            .values(view_count=Paste.view_count + 1)
            .returning(Paste.view_count)
            .execution_options(synchronize_session=False)
        )
        row = self._session.execute(stmt).one_or_none()
        if row is None:
            raise PasteRecordNotFound(f"Paste with id {paste_id} not found.")

        (new_count,) = row
        return int(new_count)

    def increment_view_count_locking(self, paste_id: str) -> int:
        """
        Increment the view count under a row lock.

        For stores without ``UPDATE ... RETURNING``: lock the row, apply a
        relative update and read the counter back before the caller commits,
        so the returned value is the one this transaction wrote.
        """

        locked: Select[tuple[int]] = (
            select(Paste.view_count).where(Paste.id == paste_id).with_for_update()
        )
        if self._session.execute(locked).scalar_one_or_none() is None:
            raise PasteRecordNotFound(f"Paste with id {paste_id} not found.")

        stmt: Update = (
            update(Paste)
            .where(Paste.id == paste_id)
            .values(view_count=Paste.view_count + 1)
            .execution_options(synchronize_session=False)
        )
        if self._session.execute(stmt).rowcount == 0:
            raise PasteRecordNotFound(f"Paste with id {paste_id} not found.")

        new_count = self._session.execute(
            select(Paste.view_count).where(Paste.id == paste_id)
        ).scalar_one()
        return int(new_count)

    def delete_unavailable(self, now: datetime) -> int:
        """Delete pastes that are time-expired or view-exhausted at ``now``."""

        stmt: Delete = (
            delete(Paste)
            .where(
                or_(
                    Paste.expires_at <= as_utc(now),
                    Paste.view_count >= Paste.max_views,
                )
            )
            .execution_options(synchronize_session=False)
        )
        return int(self._session.execute(stmt).rowcount or 0)


def _safe_rollback(session: Session) -> None:
    try:
        session.rollback()
    except SQLAlchemyError:
        logger.warning(
            "Rollback failed after store error",
            extra={
                "event": "paste_store_rollback_failed",
                "correlation_id": get_correlation_id(),
            },
            exc_info=True,
        )


class PasteStore:
    """
    Record store adapter for pastes.

    Owns session lifecycle: creates a session per operation, commits on
    success, rolls back on error, and closes the session in a finally block.
    Returns ``PasteRecord`` snapshots; no ORM entities escape this class.
    Database errors surface as ``StorageFailure`` (or
    ``IndeterminateIncrement`` when an increment may have been applied).
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        increment_strategy: IncrementStrategy | str = IncrementStrategy.AUTO,
        fetch_attempts: int = 2,
    ) -> None:
        self.session_factory = session_factory
        self.increment_strategy = self._resolve_strategy(increment_strategy)
        self.fetch_attempts = max(1, int(fetch_attempts))

    def _resolve_strategy(self, requested: IncrementStrategy | str) -> IncrementStrategy:
        """
        Pick the increment path from the dialect's capabilities.

        ``auto`` uses ``UPDATE ... RETURNING`` where the dialect supports it
        and row locking otherwise. The choice is made once, never per call.
        """

        try:
            strategy = IncrementStrategy(requested)
        except ValueError as exc:
            valid = ", ".join(s.value for s in IncrementStrategy)
            raise ValueError(
                f"Unknown increment strategy {requested!r}. Valid strategies: {valid}"
            ) from exc

        session = self.session_factory()
        try:
            dialect = session.get_bind().dialect
        finally:
            session.close()

        supports_returning = bool(getattr(dialect, "update_returning", False))
        if strategy is IncrementStrategy.AUTO:
            strategy = (
                IncrementStrategy.RETURNING if supports_returning else IncrementStrategy.LOCKING
            )
        elif strategy is IncrementStrategy.RETURNING and not supports_returning:
            raise ValueError(
                f"Dialect {dialect.name!r} does not support UPDATE ... RETURNING; "
                "use the 'locking' increment strategy."
            )

        logger.info(
            "Paste store increment strategy selected",
            extra={
                "event": "paste_store_strategy",
                "strategy": strategy.value,
            },
        )
        return strategy

    def create(
        self,
        content: str,
        expires_at: Optional[datetime] = None,
        max_views: Optional[int] = None,
        *,
        created_at: Optional[datetime] = None,
    ) -> str:
        """Persist a new paste and return its id."""

        session = self.session_factory()
        try:
            paste = PasteRepository(session=session).create_paste(
                content=content,
                expires_at=expires_at,
                max_views=max_views,
                created_at=created_at,
            )
            paste_id = paste.id
            session.commit()
            return paste_id
        except IntegrityError as exc:
            _safe_rollback(session)
            logger.error(
                "Paste id collision or constraint violation on create",
                extra={
                    "event": "paste_store_create_conflict",
                    "error_type": type(exc).__name__,
                    "correlation_id": get_correlation_id(),
                },
            )
            raise StorageFailure("Paste could not be stored.") from exc
        except SQLAlchemyError as exc:
            _safe_rollback(session)
            logger.error(
                "Paste create failed",
                extra={
                    "event": "paste_store_create_failed",
                    "error_type": type(exc).__name__,
                    "correlation_id": get_correlation_id(),
                },
            )
            raise StorageFailure("Paste could not be stored.") from exc
        finally:
            session.close()

    def fetch(self, paste_id: str) -> Optional[PasteRecord]:
        """
        Return the current persisted state of a paste, or ``None``.

        Read-only, so operational errors are retried up to ``fetch_attempts``.
        """

        attempt = 0
        while True:
            attempt += 1
            session = self.session_factory()
            try:
                paste = PasteRepository(session=session).get_paste_by_id(paste_id)
                return PasteRecord.from_model(paste) if paste is not None else None
            except OperationalError as exc:
                _safe_rollback(session)
                if attempt < self.fetch_attempts:
                    logger.warning(
                        "Paste fetch failed; retrying",
                        extra={
                            "event": "paste_store_fetch_retry",
                            "paste_id": paste_id,
                            "error_type": type(exc).__name__,
                            "correlation_id": get_correlation_id(),
                        },
                    )
                    continue
                raise StorageFailure(f"Paste {paste_id} could not be read.") from exc
            except SQLAlchemyError as exc:
                _safe_rollback(session)
                raise StorageFailure(f"Paste {paste_id} could not be read.") from exc
            finally:
                session.close()

    def increment_view_count(self, paste_id: str) -> int:
        """
        Atomically add one view and return the post-increment count.

        Raises ``PasteRecordNotFound`` if the paste is gone. Errors before any
        statement is sent raise ``StorageFailure``; errors afterwards raise
        ``IndeterminateIncrement`` because the write may have landed.
        """

        session = self.session_factory()
        try:
            try:
                session.connection()
            except SQLAlchemyError as exc:
                raise StorageFailure(
                    f"No store connection to count a view of paste {paste_id}."
                ) from exc

            repo = PasteRepository(session=session)
            try:
                if self.increment_strategy is IncrementStrategy.RETURNING:
                    new_count = repo.increment_view_count_returning(paste_id)
                else:
                    new_count = repo.increment_view_count_locking(paste_id)
                session.commit()
            except PasteRecordNotFound:
                _safe_rollback(session)
                raise
            except SQLAlchemyError as exc:
                _safe_rollback(session)
                logger.error(
                    "Paste view increment outcome unknown",
                    extra={
                        "event": "paste_store_increment_indeterminate",
                        "paste_id": paste_id,
                        "strategy": self.increment_strategy.value,
                        "error_type": type(exc).__name__,
                        "correlation_id": get_correlation_id(),
                    },
                )
                raise IndeterminateIncrement(
                    f"View increment for paste {paste_id} may or may not have been applied."
                ) from exc
            return new_count
        finally:
            session.close()

    def purge_unavailable(self, now: datetime) -> int:
        """Delete every paste that can no longer be served at ``now``."""

        session = self.session_factory()
        try:
            purged = PasteRepository(session=session).delete_unavailable(now)
            session.commit()
            return purged
        except SQLAlchemyError as exc:
            _safe_rollback(session)
            raise StorageFailure("Unavailable pastes could not be purged.") from exc
        finally:
            session.close()

    def ping(self) -> bool:
        """Return ``True`` if the store answers a trivial query."""

        session = self.session_factory()
        try:
            session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            logger.warning(
                "Paste store health check failed",
                extra={
                    "event": "paste_store_unhealthy",
                    "correlation_id": get_correlation_id(),
                },
                exc_info=True,
            )
            return False
        finally:
            session.close()
