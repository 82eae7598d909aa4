"""
Unit tests for services/ledger_service.py.

DB-free: the session is a MagicMock, the trip snapshot is pre-loaded into a
real in-memory TripSnapshotCache, and the settlement ledger is patched. The
point is the orchestration: access before validation, validation before any
write, recalculation after every write.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from backend.app.errors import AppError, ErrorCode
from backend.app.models.expense import Category, SplitStrategy
from backend.app.services import ledger_service
from backend.app.services.access_policy import Principal, Role
from backend.app.services.trip_cache import (
    InMemoryCacheBackend,
    MemberSnapshot,
    TripSnapshot,
    TripSnapshotCache,
)

TRIP_ID = 1
ALICE = Principal(user_id=10, email="alice@example.com")   # creator, member 100
BOB = Principal(user_id=20, email="bob@example.com")       # member 101
EVE = Principal(user_id=30, email="eve@example.com")       # stranger


def _snapshot() -> TripSnapshot:
    return TripSnapshot(
        id=TRIP_ID,
        owner_id=ALICE.user_id,
        start_date=date(2026, 8, 1),
        end_date=date(2026, 8, 5),
        members=(
            MemberSnapshot(id=100, email=ALICE.email, name="Alice", user_id=10),
            MemberSnapshot(id=101, email=BOB.email, name="Bob", user_id=20),
        ),
    )


@pytest.fixture
def cache() -> TripSnapshotCache:
    c = TripSnapshotCache(backend=InMemoryCacheBackend(), ttl_seconds=300)
    c.put(TRIP_ID, _snapshot())
    return c


@pytest.fixture
def ledger():
    """Patches the settlement ledger: two members, recalculate recorded."""
    with patch.object(ledger_service, "settlement_ledger") as mock_ledger:
        mock_ledger.get_trip_members.return_value = [
            SimpleNamespace(id=100),
            SimpleNamespace(id=101),
        ]
        yield mock_ledger


def _expense_data(**overrides) -> dict:
    data = {
        "description": "Dinner",
        "amount": Decimal("100.00"),
        "split_strategy": SplitStrategy.EQUAL,
        "category": Category.FOOD,
        "expense_date": date(2026, 8, 2),
        "splits": None,
        "payer_id": None,
    }
    data.update(overrides)
    return data


# ── Snapshot loading ───────────────────────────────────────────────────────

def test_load_trip_snapshot_serves_cached_entry_without_db(cache):
    session = MagicMock()

    snapshot = ledger_service.load_trip_snapshot(TRIP_ID, session, cache)

    assert snapshot == _snapshot()
    session.get.assert_not_called()


def test_load_trip_snapshot_miss_reads_db_and_populates_cache():
    cache = TripSnapshotCache(backend=InMemoryCacheBackend(), ttl_seconds=300)
    session = MagicMock()
    session.get.return_value = SimpleNamespace(
        id=TRIP_ID,
        owner_id=10,
        start_date=date(2026, 8, 1),
        end_date=date(2026, 8, 5),
        members=[SimpleNamespace(id=100, email="alice@example.com", name="Alice", user_id=10)],
    )

    snapshot = ledger_service.load_trip_snapshot(TRIP_ID, session, cache)

    assert snapshot.owner_id == 10
    assert cache.get(TRIP_ID) == snapshot


def test_load_trip_snapshot_unknown_trip_is_not_found():
    cache = TripSnapshotCache(backend=InMemoryCacheBackend())
    session = MagicMock()
    session.get.return_value = None

    with pytest.raises(AppError) as exc_info:
        ledger_service.load_trip_snapshot(999, session, cache)

    assert exc_info.value.code == ErrorCode.TRIP_NOT_FOUND
    assert exc_info.value.http_status == 404


# ── Access ─────────────────────────────────────────────────────────────────

def test_require_trip_access_returns_role(cache):
    _, access = ledger_service.require_trip_access(TRIP_ID, BOB, MagicMock(), cache)
    assert access.role == Role.MEMBER


def test_require_trip_access_stranger_is_forbidden(cache):
    with pytest.raises(AppError) as exc_info:
        ledger_service.require_trip_access(TRIP_ID, EVE, MagicMock(), cache)

    assert exc_info.value.code == ErrorCode.FORBIDDEN
    assert exc_info.value.http_status == 403


# ── create_expense ─────────────────────────────────────────────────────────

def test_create_expense_persists_splits_then_recalculates(cache, ledger):
    session = MagicMock()

    expense = ledger_service.create_expense(TRIP_ID, BOB, _expense_data(), session, cache)

    assert expense.created_by_id == 101
    assert expense.payer_id == 101          # defaults to the caller
    assert [s.amount for s in expense.splits] == [Decimal("50.00"), Decimal("50.00")]
    session.add.assert_called_once_with(expense)
    ledger.recalculate.assert_called_once_with(TRIP_ID, session)


def test_create_expense_stranger_is_forbidden_before_any_write(cache, ledger):
    session = MagicMock()

    with pytest.raises(AppError) as exc_info:
        ledger_service.create_expense(TRIP_ID, EVE, _expense_data(), session, cache)

    assert exc_info.value.code == ErrorCode.FORBIDDEN
    session.add.assert_not_called()
    ledger.recalculate.assert_not_called()


def test_create_expense_creator_without_member_row_is_forbidden(ledger):
    cache = TripSnapshotCache(backend=InMemoryCacheBackend())
    cache.put(TRIP_ID, TripSnapshot(
        id=TRIP_ID,
        owner_id=ALICE.user_id,
        start_date=date(2026, 8, 1),
        end_date=date(2026, 8, 5),
        members=(MemberSnapshot(id=101, email=BOB.email, name="Bob"),),
    ))

    with pytest.raises(AppError) as exc_info:
        ledger_service.create_expense(TRIP_ID, ALICE, _expense_data(), MagicMock(), cache)

    assert exc_info.value.code == ErrorCode.FORBIDDEN


def test_create_expense_payer_outside_trip_is_rejected(cache, ledger):
    session = MagicMock()

    with pytest.raises(AppError) as exc_info:
        ledger_service.create_expense(
            TRIP_ID, BOB, _expense_data(payer_id=555), session, cache
        )

    err = exc_info.value
    assert err.code == ErrorCode.PAYER_NOT_MEMBER
    assert err.http_status == 422
    assert err.field == "payer_id"
    session.add.assert_not_called()


def test_create_expense_invalid_split_writes_nothing(cache, ledger):
    session = MagicMock()
    data = _expense_data(
        split_strategy=SplitStrategy.EXACT,
        splits=[
            {"member_id": 100, "amount": Decimal("40.00")},
            {"member_id": 101, "amount": Decimal("60.02")},
        ],
    )

    with pytest.raises(AppError) as exc_info:
        ledger_service.create_expense(TRIP_ID, BOB, data, session, cache)

    assert exc_info.value.code == ErrorCode.SPLIT_SUM_MISMATCH
    session.add.assert_not_called()
    session.flush.assert_not_called()
    ledger.recalculate.assert_not_called()


# ── update / delete permissions ────────────────────────────────────────────

def _stored_expense(created_by_id: int | None) -> SimpleNamespace:
    return SimpleNamespace(
        id=5,
        trip_id=TRIP_ID,
        created_by_id=created_by_id,
        amount=Decimal("20.00"),
        split_strategy=SplitStrategy.EQUAL,
        splits=[],
    )


def test_member_cannot_update_someone_elses_expense(cache, ledger):
    session = MagicMock()
    session.get.return_value = _stored_expense(created_by_id=100)

    with pytest.raises(AppError) as exc_info:
        ledger_service.update_expense(5, BOB, {"description": "x"}, session, cache)

    assert exc_info.value.code == ErrorCode.FORBIDDEN
    ledger.recalculate.assert_not_called()


def test_creator_can_update_any_expense(cache, ledger):
    session = MagicMock()
    stored = _stored_expense(created_by_id=101)
    session.get.return_value = stored

    ledger_service.update_expense(5, ALICE, {"description": "Taxi"}, session, cache)

    assert stored.description == "Taxi"
    ledger.recalculate.assert_called_once_with(TRIP_ID, session)


def test_update_exact_without_splits_requires_splits(cache, ledger):
    session = MagicMock()
    session.get.return_value = _stored_expense(created_by_id=101)

    with pytest.raises(AppError) as exc_info:
        ledger_service.update_expense(
            5, BOB, {"split_strategy": SplitStrategy.EXACT}, session, cache
        )

    assert exc_info.value.code == ErrorCode.SPLITS_REQUIRED


def test_delete_expense_by_stranger_is_forbidden(cache, ledger):
    session = MagicMock()
    session.get.return_value = _stored_expense(created_by_id=101)

    with pytest.raises(AppError) as exc_info:
        ledger_service.delete_expense(5, EVE, session, cache)

    assert exc_info.value.code == ErrorCode.FORBIDDEN
    session.delete.assert_not_called()


def test_delete_expense_returns_trip_and_recalculates(cache, ledger):
    session = MagicMock()
    stored = _stored_expense(created_by_id=101)
    session.get.return_value = stored

    trip_id = ledger_service.delete_expense(5, BOB, session, cache)

    assert trip_id == TRIP_ID
    session.delete.assert_called_once_with(stored)
    ledger.recalculate.assert_called_once_with(TRIP_ID, session)


def test_missing_expense_is_not_found(cache):
    session = MagicMock()
    session.get.return_value = None

    with pytest.raises(AppError) as exc_info:
        ledger_service.delete_expense(404, ALICE, session, cache)

    assert exc_info.value.code == ErrorCode.EXPENSE_NOT_FOUND
