"""
services/settlement_ledger.py — Per-member settlement totals for a trip.

This file is the SINGLE SOURCE OF TRUTH for how settlement rows are computed.

A settlement row is:
    settlement(trip, member) = Σ split.amount over every split of every
                               expense in the trip where split.member == member

Recalculation is a full recompute, never a delta:
  1. Seed 0.00 for every current member (members without expenses still get
     an explicit zero row, not a missing one).
  2. Add every split of every trip expense into its member's total.
  3. Upsert one row per (trip, member); drop rows for members that left.

Splits can be deleted, edited or moved between members; re-aggregating from
committed rows is simpler and safer than reverse-applying old state. Cost is
O(members + splits), and a trip has tens to low hundreds of expenses.
Running it twice with no writes in between yields identical rows.

Transactions:
  recalculate() only flushes. It runs inside the caller's transaction, right
  after the expense/split write, and the route commits once. If it raises,
  nothing is committed — the expense change and the ledger move together.

Layer rules:
  - No Flask imports. Receives a SQLAlchemy Session as an argument.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import ErrorCode, not_found
from backend.app.models.expense import Expense
from backend.app.models.member import Member
from backend.app.models.settlement import Settlement
from backend.app.models.split import Split

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


# ── Data access helpers ────────────────────────────────────────────────────

def get_trip_members(trip_id: int, session: Session) -> list[Member]:
    """All members of a trip in id order."""
    stmt = select(Member).where(Member.trip_id == trip_id).order_by(Member.id)
    return list(session.execute(stmt).scalars().all())


def get_trip_splits(trip_id: int, session: Session) -> list[Split]:
    """Every split of every expense belonging to the trip."""
    stmt = (
        select(Split)
        .join(Expense, Split.expense_id == Expense.id)
        .where(Expense.trip_id == trip_id)
    )
    return list(session.execute(stmt).scalars().all())


def get_settlement_rows(trip_id: int, session: Session) -> list[Settlement]:
    stmt = select(Settlement).where(Settlement.trip_id == trip_id)
    return list(session.execute(stmt).scalars().all())


# ── Core algorithm ─────────────────────────────────────────────────────────

def aggregate_balances(
        member_ids: list[int],
        splits: list,
) -> "OrderedDict[int, Decimal]":
    """
    Pure aggregation step: {member_id: Σ split.amount}, every member seeded
    with 0.00. Splits for ids outside `member_ids` are still counted so no
    money silently disappears from the ledger.
    """
    totals: OrderedDict[int, Decimal] = OrderedDict(
        (member_id, ZERO) for member_id in member_ids
    )
    for split in splits:
        totals[split.member_id] = totals.get(split.member_id, ZERO) + split.amount
    return totals


def recalculate(trip_id: int, session: Session) -> dict[int, Decimal]:
    """
    Recomputes and upserts every settlement row for the trip.

    Returns:
        {member_id: amount} exactly as written.
    """
    members = get_trip_members(trip_id, session)
    splits = get_trip_splits(trip_id, session)
    totals = aggregate_balances([m.id for m in members], splits)

    existing = {row.member_id: row for row in get_settlement_rows(trip_id, session)}
    now = datetime.now(timezone.utc)

    for member_id, amount in totals.items():
        row = existing.pop(member_id, None)
        if row is None:
            session.add(Settlement(trip_id=trip_id, member_id=member_id, amount=amount))
        elif row.amount != amount:
            row.amount = amount
            row.updated_at = now

    # Whatever is left belongs to members no longer in the trip.
    for stale in existing.values():
        session.delete(stale)

    session.flush()

    logger.info(
        "Recalculated settlements for trip %s: %d members, %d splits, total %s",
        trip_id,
        len(totals),
        len(splits),
        sum(totals.values(), ZERO),
    )
    return dict(totals)


# ── Read side ──────────────────────────────────────────────────────────────

def _serialize_row(row: Settlement) -> dict:
    return {
        "id": row.id,
        "trip_id": row.trip_id,
        "member_id": row.member_id,
        "member_name": row.member.name,
        "amount": row.amount,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


def get_settlements(trip_id: int, session: Session) -> dict:
    """
    All settlement rows of a trip, largest amount first, plus their total.
    """
    stmt = (
        select(Settlement)
        .where(Settlement.trip_id == trip_id)
        .order_by(Settlement.amount.desc(), Settlement.member_id.asc())
    )
    rows = list(session.execute(stmt).scalars().all())
    return {
        "trip_id": trip_id,
        "settlements": [_serialize_row(r) for r in rows],
        "total": sum((r.amount for r in rows), ZERO),
    }


def get_settlement_detail(trip_id: int, member_id: int, session: Session) -> dict:
    """
    One member's settlement row plus the splits that make it up, newest
    expense first. The breakdown is a join over Split/Expense, not a stored copy.

    Raises:
        AppError(SETTLEMENT_NOT_FOUND, 404) — no row for this member in this trip.
    """
    row = session.execute(
        select(Settlement).where(
            Settlement.trip_id == trip_id,
            Settlement.member_id == member_id,
        )
    ).scalar_one_or_none()

    if row is None:
        raise not_found(
            ErrorCode.SETTLEMENT_NOT_FOUND,
            f"No settlement for member {member_id} in trip {trip_id}.",
        )

    stmt = (
        select(Split, Expense)
        .join(Expense, Split.expense_id == Expense.id)
        .where(
            Expense.trip_id == trip_id,
            Split.member_id == member_id,
        )
        .order_by(Expense.expense_date.desc(), Expense.id.desc())
    )
    breakdown = [
        {
            "expense_id": expense.id,
            "description": expense.description,
            "amount": split.amount,
            "split_strategy": expense.split_strategy.value,
            "expense_date": expense.expense_date.isoformat(),
        }
        for split, expense in session.execute(stmt).all()
    ]

    payload = _serialize_row(row)
    payload["breakdown"] = breakdown
    return payload
