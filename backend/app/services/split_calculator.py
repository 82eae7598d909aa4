"""
services/split_calculator.py — Expense amount → per-member splits.

Pure Decimal arithmetic. No database, no Flask.

Strategies (a closed set, built once from the request by build_split_plan):
  EqualShares           — divide among all trip members
  ExactShares(shares)   — caller gives each member's amount
  PercentageShares(...) — caller gives each member's percentage

Exactness:
  Every result satisfies sum(split.amount) == amount EXACTLY. Rounding alone
  cannot guarantee that; each strategy hands the leftover cents to one
  designated split:
    EQUAL      → the first member in iteration order
    EXACT      → the last entry (only residues within the 0.01 tolerance)
    PERCENTAGE → the last entry receives amount − sum(previous amounts)

Tolerances:
  EXACT      |sum(amounts) − amount| ≤ 0.01
  PERCENTAGE |sum(percentages) − 100| ≤ 0.1  (inputs are pre-rounded)

Rounding: ROUND_HALF_UP to 2 dp, applied uniformly.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Union

from backend.app.errors import ErrorCode, degenerate_input, invalid_split
from backend.app.models.expense import SplitStrategy

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
AMOUNT_TOLERANCE = Decimal("0.01")
PERCENTAGE_TOLERANCE = Decimal("0.1")


def round2(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


# ── Strategy variants ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class MemberAmount:
    member_id: int
    amount: Decimal


@dataclass(frozen=True)
class MemberPercentage:
    member_id: int
    percentage: Decimal


@dataclass(frozen=True)
class EqualShares:
    strategy = SplitStrategy.EQUAL


@dataclass(frozen=True)
class ExactShares:
    shares: tuple[MemberAmount, ...]
    strategy = SplitStrategy.EXACT


@dataclass(frozen=True)
class PercentageShares:
    shares: tuple[MemberPercentage, ...]
    strategy = SplitStrategy.PERCENTAGE


SplitPlan = Union[EqualShares, ExactShares, PercentageShares]


@dataclass(frozen=True)
class ComputedSplit:
    member_id: int
    amount: Decimal
    percentage: Decimal


def build_split_plan(strategy: SplitStrategy, entries: list[dict] | None) -> SplitPlan:
    """
    Converts the validated request payload into a SplitPlan.

    `entries` is the list of {"member_id", "amount"?, "percentage"?} dicts from
    the expense schema. For EQUAL it is ignored.

    Raises:
        AppError(MISSING_FIELD, 400) — an entry lacks the field its strategy
        needs (possible on PATCH, where the strategy comes from the stored row).
    """
    entries = entries or []
    if strategy == SplitStrategy.EQUAL:
        return EqualShares()
    if strategy == SplitStrategy.EXACT:
        return ExactShares(tuple(
            MemberAmount(member_id=e["member_id"], amount=_entry_value(e, "amount", strategy))
            for e in entries
        ))
    return PercentageShares(tuple(
        MemberPercentage(member_id=e["member_id"], percentage=_entry_value(e, "percentage", strategy))
        for e in entries
    ))


def _entry_value(entry: dict, key: str, strategy: SplitStrategy) -> Decimal:
    value = entry.get(key)
    if value is None:
        raise degenerate_input(
            ErrorCode.MISSING_FIELD,
            f"Every split entry needs '{key}' for the {strategy.value} strategy.",
            field="splits",
        )
    return Decimal(value)


# ── Validation helpers ─────────────────────────────────────────────────────

def _require_positive_amount(amount: Decimal) -> None:
    if amount <= 0:
        raise degenerate_input(
            ErrorCode.NON_POSITIVE_AMOUNT,
            f"Expense amount must be greater than zero (got {amount}).",
            field="amount",
        )


def _require_members(member_ids: list[int]) -> None:
    if not member_ids:
        raise degenerate_input(
            ErrorCode.NO_MEMBERS_TO_SPLIT,
            "The trip has no members to split the expense among.",
        )


def _require_entries(shares: tuple, strategy: SplitStrategy) -> None:
    if not shares:
        raise invalid_split(
            ErrorCode.SPLITS_REQUIRED,
            f"Splits must be provided for the {strategy.value} strategy.",
        )


def _require_known_unique_members(shares: Iterable, trip_member_ids: set[int]) -> None:
    seen: set[int] = set()
    for share in shares:
        if share.member_id in seen:
            raise invalid_split(
                ErrorCode.DUPLICATE_SPLIT_MEMBER,
                f"Member {share.member_id} appears more than once in the splits.",
            )
        seen.add(share.member_id)
        if share.member_id not in trip_member_ids:
            raise invalid_split(
                ErrorCode.SPLIT_MEMBER_NOT_IN_TRIP,
                f"Member {share.member_id} does not belong to this trip.",
                details={"member_id": share.member_id},
            )


def _percentage_of(part: Decimal, total: Decimal) -> Decimal:
    return round2(part / total * HUNDRED)


# ── Strategies ─────────────────────────────────────────────────────────────

def split_equally(amount: Decimal, member_ids: list[int]) -> list[ComputedSplit]:
    """
    round2(amount / n) for everyone; the first member also takes the residue.

    $100.00 over 3 members → [33.34, 33.33, 33.33].

    When the amount is tiny next to n, rounding per_person up pushes the
    residue below zero by more than one share and the first member's share
    goes negative: $0.05 over 10 → [-0.04, 0.01 x 9]. The total is still exact.
    """
    _require_positive_amount(amount)
    _require_members(member_ids)

    n = len(member_ids)
    per_person = round2(amount / n)
    remainder = amount - per_person * n

    splits = []
    for index, member_id in enumerate(member_ids):
        share = per_person + remainder if index == 0 else per_person
        splits.append(ComputedSplit(
            member_id=member_id,
            amount=share,
            percentage=_percentage_of(share, amount),
        ))
    return splits


def split_exactly(
        amount: Decimal,
        shares: tuple[MemberAmount, ...],
        trip_member_ids: set[int],
) -> list[ComputedSplit]:
    """
    Uses the caller's amounts. Rejects a total more than 0.01 off; a residue
    inside the tolerance is absorbed by the last entry.
    """
    _require_positive_amount(amount)
    _require_entries(shares, SplitStrategy.EXACT)
    _require_known_unique_members(shares, trip_member_ids)

    rounded = [round2(s.amount) for s in shares]
    total = sum(rounded, Decimal("0.00"))
    difference = amount - total
    if abs(difference) > AMOUNT_TOLERANCE:
        raise invalid_split(
            ErrorCode.SPLIT_SUM_MISMATCH,
            f"Split amounts ({total}) do not equal expense amount ({amount}).",
            details={
                "expense_amount": str(amount),
                "splits_total": str(total),
                "difference": str(difference),
            },
        )

    rounded[-1] += difference

    return [
        ComputedSplit(
            member_id=share.member_id,
            amount=value,
            percentage=_percentage_of(value, amount),
        )
        for share, value in zip(shares, rounded)
    ]


def split_by_percentage(
        amount: Decimal,
        shares: tuple[MemberPercentage, ...],
        trip_member_ids: set[int],
) -> list[ComputedSplit]:
    """
    round2(amount × pct / 100) per entry, except the last entry which gets
    whatever is left so the total is exact.

    30/30/40 % of $99.99 → [30.00, 30.00, 39.99].
    """
    _require_positive_amount(amount)
    _require_entries(shares, SplitStrategy.PERCENTAGE)

    total_percentage = sum((s.percentage for s in shares), Decimal("0"))
    if abs(total_percentage - HUNDRED) > PERCENTAGE_TOLERANCE:
        raise invalid_split(
            ErrorCode.PERCENTAGE_SUM_MISMATCH,
            f"Split percentages ({total_percentage}) must add up to 100.",
            details={
                "percentage_total": str(total_percentage),
                "difference": str(HUNDRED - total_percentage),
            },
        )

    _require_known_unique_members(shares, trip_member_ids)

    splits = []
    allocated = Decimal("0.00")
    last_index = len(shares) - 1
    for index, share in enumerate(shares):
        if index == last_index:
            value = amount - allocated
        else:
            value = round2(amount * share.percentage / HUNDRED)
            allocated += value
        splits.append(ComputedSplit(
            member_id=share.member_id,
            amount=value,
            percentage=round2(share.percentage),
        ))
    return splits


def calculate_splits(
        amount: Decimal,
        plan: SplitPlan,
        member_ids: list[int],
) -> list[ComputedSplit]:
    """
    Dispatches on the plan variant.

    Args:
        amount:     Expense amount (Decimal, 2 dp).
        plan:       The resolved SplitPlan.
        member_ids: All member ids of the trip, in a stable order. EQUAL splits
                    over all of them; EXACT/PERCENTAGE use them to reject
                    foreign member ids.
    """
    if isinstance(plan, EqualShares):
        return split_equally(amount, member_ids)

    _require_members(member_ids)
    if isinstance(plan, ExactShares):
        return split_exactly(amount, plan.shares, set(member_ids))
    if isinstance(plan, PercentageShares):
        return split_by_percentage(amount, plan.shares, set(member_ids))

    raise TypeError(f"Unknown split plan: {plan!r}")
