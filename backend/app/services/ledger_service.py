"""
services/ledger_service.py — Expense mutations and settlement queries.

Glue, not logic. Every expense mutation runs the same pipeline, in order:

  1. Load the trip snapshot (cache-aside through TripSnapshotCache).
  2. Ask the access policy.
  3. Validate and compute splits (split_calculator).
  4. Persist Expense + Splits (flush only).
  5. Recalculate the trip's settlements (settlement_ledger, flush only).

The route commits once after the service returns. If any step raises, the
error handlers roll the session back, so an expense is never committed with
a stale ledger.

Authorization rules:
  - Create:  creator or member, and the caller must have a member record
             (it becomes the expense's created_by_id).
  - Read:    creator or member.
  - Update / Delete: access_policy.can_modify_owned_resource — creator for
             any expense, members only for expenses they recorded.
  - Unknown trip → TRIP_NOT_FOUND (404); stranger → FORBIDDEN (403).

Settlement queries only check that the trip exists before delegating;
routes check access first.

Layer rules:
  - No Flask imports. Receives a Principal, plain dicts, a Session and the
    TripSnapshotCache as arguments.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import ErrorCode, forbidden, invalid_split, not_found
from backend.app.models.expense import Category, Expense, SplitStrategy
from backend.app.models.member import Member
from backend.app.models.split import Split
from backend.app.models.trip import Trip
from backend.app.services import settlement_ledger
from backend.app.services.access_policy import (
    AccessResult,
    Principal,
    can_modify_owned_resource,
    evaluate_access,
    resolve_member_id,
)
from backend.app.services.split_calculator import (
    ComputedSplit,
    build_split_plan,
    calculate_splits,
)
from backend.app.services.trip_cache import TripSnapshot, TripSnapshotCache

logger = logging.getLogger(__name__)


# ── Trip lookup and access ─────────────────────────────────────────────────

def _get_trip_or_404(trip_id: int, session: Session) -> Trip:
    """Returns the Trip or raises TRIP_NOT_FOUND (404)."""
    trip = session.get(Trip, trip_id)
    if trip is None:
        raise not_found(ErrorCode.TRIP_NOT_FOUND, f"Trip {trip_id} does not exist.")
    return trip


def _get_expense_or_404(expense_id: int, session: Session) -> Expense:
    """Returns the Expense or raises EXPENSE_NOT_FOUND (404)."""
    expense = session.get(Expense, expense_id)
    if expense is None:
        raise not_found(ErrorCode.EXPENSE_NOT_FOUND, f"Expense {expense_id} does not exist.")
    return expense


def load_trip_snapshot(
        trip_id: int,
        session: Session,
        cache: TripSnapshotCache,
) -> TripSnapshot:
    """
    Cache-aside read of the trip and its members.

    On a miss the trip is read from the database and written back to the
    cache with the configured TTL.

    Raises:
        AppError(TRIP_NOT_FOUND, 404)
    """
    snapshot = cache.get(trip_id)
    if snapshot is not None:
        return snapshot

    trip = _get_trip_or_404(trip_id, session)
    snapshot = TripSnapshot.from_trip(trip)
    cache.put(trip_id, snapshot)
    return snapshot


def require_trip_access(
        trip_id: int,
        principal: Principal,
        session: Session,
        cache: TripSnapshotCache,
) -> tuple[TripSnapshot, AccessResult]:
    """
    Returns (snapshot, access) when the principal is the creator or a member.

    Raises:
        AppError(TRIP_NOT_FOUND, 404)
        AppError(FORBIDDEN, 403) — principal has no role in the trip.
    """
    snapshot = load_trip_snapshot(trip_id, session, cache)
    access = evaluate_access(principal, snapshot)
    if not access.can_access:
        raise forbidden(f"You do not have access to trip {trip_id}.")
    return snapshot, access


# ── Split persistence helpers ──────────────────────────────────────────────

def _trip_member_ids(trip_id: int, session: Session) -> list[int]:
    """Member ids from the database, id order. The split member set is never read from the cache."""
    return [m.id for m in settlement_ledger.get_trip_members(trip_id, session)]


def _validate_payer(payer_id: int, member_ids: list[int], trip_id: int) -> None:
    """Raises PAYER_NOT_MEMBER (422) if the payer is not a member of the trip."""
    if payer_id not in member_ids:
        raise invalid_split(
            ErrorCode.PAYER_NOT_MEMBER,
            f"Member {payer_id} is not a member of trip {trip_id}.",
            field="payer_id",
        )


def _replace_splits(expense: Expense, computed: list[ComputedSplit], session: Session) -> None:
    """
    Swaps the expense's splits for `computed`.

    Old rows are flushed out before new ones go in so that
    UNIQUE(expense_id, member_id) never sees both at once.
    """
    if expense.splits:
        expense.splits.clear()
        session.flush()

    for split in computed:
        expense.splits.append(Split(
            member_id=split.member_id,
            amount=split.amount,
            percentage=split.percentage,
        ))
    session.flush()


# ── Expense mutations ──────────────────────────────────────────────────────

def create_expense(
        trip_id: int,
        principal: Principal,
        data: dict,
        session: Session,
        cache: TripSnapshotCache,
) -> Expense:
    """
    Records a new expense and refreshes the trip's settlements.

    Args:
        trip_id:   Trip the expense belongs to.
        principal: Authenticated caller.
        data:      Validated dict from CreateExpenseSchema.

    Returns:
        The new Expense with its splits loaded.
    """
    snapshot, _ = require_trip_access(trip_id, principal, session, cache)

    created_by_id = resolve_member_id(principal.email, snapshot.members)
    if created_by_id is None:
        raise forbidden("You must be a member of the trip to add expenses.")

    member_ids = _trip_member_ids(trip_id, session)

    payer_id: int = data.get("payer_id") or created_by_id
    _validate_payer(payer_id, member_ids, trip_id)

    amount: Decimal = data["amount"]
    strategy: SplitStrategy = data.get("split_strategy", SplitStrategy.EQUAL)

    # Phase 1: validate — nothing is written until the splits are known good.
    plan = build_split_plan(strategy, data.get("splits"))
    computed = calculate_splits(amount, plan, member_ids)

    # Phase 2: persist.
    expense = Expense(
        trip_id=trip_id,
        payer_id=payer_id,
        created_by_id=created_by_id,
        description=data["description"],
        amount=amount,
        split_strategy=strategy,
        category=data.get("category", Category.OTHER),
        expense_date=data["expense_date"],
    )
    session.add(expense)
    session.flush()
    _replace_splits(expense, computed, session)

    # Phase 3: recompute the ledger in the same transaction.
    settlement_ledger.recalculate(trip_id, session)

    session.refresh(expense)
    logger.info("Expense %s recorded on trip %s (%s %s)", expense.id, trip_id, strategy.value, amount)
    return expense


def update_expense(
        expense_id: int,
        principal: Principal,
        data: dict,
        session: Session,
        cache: TripSnapshotCache,
) -> Expense:
    """
    Partially updates an expense.

    Splits are recomputed whenever amount, split_strategy or splits is
    present. EXACT and PERCENTAGE need the splits array again in that case
    (SPLITS_REQUIRED otherwise) — stored shares are not re-scaled.
    """
    expense = _get_expense_or_404(expense_id, session)
    snapshot = load_trip_snapshot(expense.trip_id, session, cache)

    if not can_modify_owned_resource(principal, snapshot, expense.created_by_id):
        raise forbidden("You can only modify expenses you created.")

    member_ids = _trip_member_ids(expense.trip_id, session)

    if "description" in data:
        expense.description = data["description"]
    if "category" in data:
        expense.category = data["category"]
    if "expense_date" in data:
        expense.expense_date = data["expense_date"]
    if data.get("payer_id") is not None:
        _validate_payer(data["payer_id"], member_ids, expense.trip_id)
        expense.payer_id = data["payer_id"]

    if any(key in data for key in ("amount", "split_strategy", "splits")):
        amount: Decimal = data.get("amount") or expense.amount
        strategy: SplitStrategy = data.get("split_strategy") or expense.split_strategy

        plan = build_split_plan(strategy, data.get("splits"))
        computed = calculate_splits(amount, plan, member_ids)

        expense.amount = amount
        expense.split_strategy = strategy
        _replace_splits(expense, computed, session)

    expense.updated_at = datetime.now(timezone.utc)
    session.flush()

    settlement_ledger.recalculate(expense.trip_id, session)

    session.refresh(expense)
    return expense


def delete_expense(
        expense_id: int,
        principal: Principal,
        session: Session,
        cache: TripSnapshotCache,
) -> int:
    """
    Hard-deletes an expense (its splits cascade) and refreshes settlements.

    Returns:
        The trip id the expense belonged to.
    """
    expense = _get_expense_or_404(expense_id, session)
    trip_id = expense.trip_id
    snapshot = load_trip_snapshot(trip_id, session, cache)

    if not can_modify_owned_resource(principal, snapshot, expense.created_by_id):
        raise forbidden("You can only delete expenses you created.")

    session.delete(expense)
    session.flush()

    settlement_ledger.recalculate(trip_id, session)
    logger.info("Expense %s deleted from trip %s", expense_id, trip_id)
    return trip_id


# ── Expense reads ──────────────────────────────────────────────────────────

def get_expense(
        expense_id: int,
        principal: Principal,
        session: Session,
        cache: TripSnapshotCache,
) -> Expense:
    expense = _get_expense_or_404(expense_id, session)
    require_trip_access(expense.trip_id, principal, session, cache)
    return expense


def list_expenses(
        trip_id: int,
        principal: Principal,
        session: Session,
        cache: TripSnapshotCache,
) -> list[Expense]:
    """All expenses of a trip, newest expense date first."""
    require_trip_access(trip_id, principal, session, cache)
    stmt = (
        select(Expense)
        .where(Expense.trip_id == trip_id)
        .order_by(Expense.expense_date.desc(), Expense.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


# ── Settlement queries ─────────────────────────────────────────────────────

def get_settlements(trip_id: int, session: Session) -> dict:
    _get_trip_or_404(trip_id, session)
    return settlement_ledger.get_settlements(trip_id, session)


def get_settlement_detail(trip_id: int, member_id: int, session: Session) -> dict:
    _get_trip_or_404(trip_id, session)
    member = session.execute(
        select(Member).where(Member.id == member_id, Member.trip_id == trip_id)
    ).scalar_one_or_none()
    if member is None:
        raise not_found(
            ErrorCode.MEMBER_NOT_FOUND,
            f"Member {member_id} does not belong to trip {trip_id}.",
        )
    return settlement_ledger.get_settlement_detail(trip_id, member_id, session)


def recalculate_settlements(trip_id: int, session: Session) -> dict[int, Decimal]:
    """Manual repair/backfill entry point. Same recompute as after every expense write."""
    _get_trip_or_404(trip_id, session)
    return settlement_ledger.recalculate(trip_id, session)
