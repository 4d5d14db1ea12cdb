from __future__ import annotations

import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from pastebin.domain.errors import (
    IndeterminateIncrement,
    PasteRecordNotFound,
    StorageFailure,
)
from pastebin.domain.lifecycle import (
    NOT_ACCESSIBLE,
    LifecycleEngine,
    NotAccessible,
    PasteView,
)
from pastebin.domain.models import PasteRecord
from pastebin.repositories.paste_repository import PasteStore


T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


class _StubStore:
    """In-memory store whose increment behaviour each test scripts."""

    def __init__(self, record: Optional[PasteRecord], increment_error: Exception | None = None) -> None:
        self.record = record
        self.increment_error = increment_error
        self.increment_calls = 0

    def fetch(self, paste_id: str) -> Optional[PasteRecord]:
        if self.record is None or self.record.id != paste_id:
            return None
        return self.record

    def increment_view_count(self, paste_id: str) -> int:
        self.increment_calls += 1
        if self.increment_error is not None:
            raise self.increment_error
        assert self.record is not None
        return self.record.view_count + 1


def _record(**overrides) -> PasteRecord:
    values = dict(
        id="paste-1",
        content="hello",
        created_at=T0,
        expires_at=None,
        max_views=None,
        view_count=0,
    )
    values.update(overrides)
    return PasteRecord(**values)


# ---------------------------------------------------------------------------
# Gating against the real store
# ---------------------------------------------------------------------------


def test_time_gating_boundary(store: PasteStore) -> None:
    engine = LifecycleEngine(store)
    paste_id = store.create("timed", _at(10), created_at=T0)

    assert engine.access(paste_id, _at(9)) == PasteView(
        content="timed",
        remaining_views=None,
        expires_at=_at(10),
    )
    assert engine.access(paste_id, _at(10)) is NOT_ACCESSIBLE


def test_single_view_paste_is_served_once(store: PasteStore) -> None:
    engine = LifecycleEngine(store)
    paste_id = store.create("burn after reading", max_views=1, created_at=T0)

    first = engine.access(paste_id, _at(1))
    assert isinstance(first, PasteView)
    assert first.remaining_views == 0

    assert engine.access(paste_id, _at(2)) is NOT_ACCESSIBLE


def test_unavailable_outcomes_are_indistinguishable(store: PasteStore) -> None:
    engine = LifecycleEngine(store)
    expired = store.create("expired", _at(5), created_at=T0)
    exhausted = store.create("exhausted", max_views=1, created_at=T0)
    engine.access(exhausted, _at(1))

    outcomes = [
        engine.access(str(uuid.uuid4()), _at(6)),
        engine.access(expired, _at(6)),
        engine.access(exhausted, _at(6)),
    ]

    assert all(outcome is NOT_ACCESSIBLE for outcome in outcomes)
    assert {repr(outcome) for outcome in outcomes} == {"NOT_ACCESSIBLE"}
    assert NotAccessible() is NOT_ACCESSIBLE


def test_unlimited_paste_is_always_served(store: PasteStore) -> None:
    engine = LifecycleEngine(store)
    paste_id = store.create("evergreen", created_at=T0)

    for day in range(1, 26):
        outcome = engine.access(paste_id, T0 + timedelta(days=day * 400))
        assert outcome == PasteView(content="evergreen", remaining_views=None, expires_at=None)

    record = store.fetch(paste_id)
    assert record is not None
    assert record.view_count == 25


def test_ttl_and_view_limit_scenario(store: PasteStore) -> None:
    engine = LifecycleEngine(store)
    paste_id = store.create("hello", _at(5), 2, created_at=T0)

    assert engine.access(paste_id, _at(1)) == PasteView("hello", 1, _at(5))
    assert engine.access(paste_id, _at(2)) == PasteView("hello", 0, _at(5))
    assert engine.access(paste_id, _at(3)) is NOT_ACCESSIBLE
    assert engine.access(paste_id, _at(100)) is NOT_ACCESSIBLE


def test_denied_access_does_not_count_a_view(store: PasteStore) -> None:
    engine = LifecycleEngine(store)
    paste_id = store.create("timed", _at(10), 3, created_at=T0)

    assert engine.access(paste_id, _at(11)) is NOT_ACCESSIBLE

    record = store.fetch(paste_id)
    assert record is not None
    assert record.view_count == 0


# ---------------------------------------------------------------------------
# Races and failures
# ---------------------------------------------------------------------------


class _FetchBarrierStore:
    """Holds every fetch until all racers have read the pre-increment count."""

    def __init__(self, inner: PasteStore, parties: int) -> None:
        self._inner = inner
        self._barrier = threading.Barrier(parties)

    def fetch(self, paste_id: str) -> Optional[PasteRecord]:
        record = self._inner.fetch(paste_id)
        self._barrier.wait(timeout=10)
        return record

    def increment_view_count(self, paste_id: str) -> int:
        return self._inner.increment_view_count(paste_id)


def test_racing_accesses_may_over_serve_at_the_limit(store: PasteStore) -> None:
    paste_id = store.create("contended", max_views=1, created_at=T0)
    racers = 3
    engine = LifecycleEngine(_FetchBarrierStore(store, racers))

    with ThreadPoolExecutor(max_workers=racers) as pool:
        outcomes = list(pool.map(lambda _: engine.access(paste_id, _at(1)), range(racers)))

    # Every racer passed the check before any increment landed.
    assert all(isinstance(outcome, PasteView) for outcome in outcomes)
    assert [outcome.remaining_views for outcome in outcomes] == [0] * racers

    record = store.fetch(paste_id)
    assert record is not None
    assert record.view_count == racers
    assert LifecycleEngine(store).access(paste_id, _at(2)) is NOT_ACCESSIBLE


def test_row_deleted_before_increment_is_not_accessible() -> None:
    stub = _StubStore(_record(), increment_error=PasteRecordNotFound("gone"))

    assert LifecycleEngine(stub).access("paste-1", _at(1)) is NOT_ACCESSIBLE
    assert stub.increment_calls == 1


def test_indeterminate_increment_propagates_without_retry() -> None:
    stub = _StubStore(
        _record(max_views=5),
        increment_error=IndeterminateIncrement("timed out"),
    )

    with pytest.raises(StorageFailure):
        LifecycleEngine(stub).access("paste-1", _at(1))
    assert stub.increment_calls == 1


def test_fetch_failure_propagates_as_storage_failure() -> None:
    class _DownStore(_StubStore):
        def fetch(self, paste_id: str) -> Optional[PasteRecord]:
            raise StorageFailure("connection refused")

    down = _DownStore(_record())
    with pytest.raises(StorageFailure):
        LifecycleEngine(down).access("paste-1", _at(1))
    assert down.increment_calls == 0


def test_remaining_views_derive_from_post_increment_count() -> None:
    # Another reader got in between this fetch and this increment.
    class _BusyStore(_StubStore):
        def increment_view_count(self, paste_id: str) -> int:
            self.increment_calls += 1
            return 3

    outcome = LifecycleEngine(_BusyStore(_record(max_views=4, view_count=1))).access(
        "paste-1", _at(1)
    )
    assert outcome == PasteView(content="hello", remaining_views=1, expires_at=None)
