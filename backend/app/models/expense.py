"""
models/expense.py — Expense table definition.

No business logic. No imports from services or routes.

Key design points:
  - `amount` uses Numeric(12, 2) — never Float.
  - payer_id and created_by_id point at Member rows, not users, so the trip
    creator and invited members are handled the same way.
  - created_by_id is nullable: legacy rows without a recorded creator can
    only be modified by the trip creator (access_policy).
  - Expenses are hard-deleted; their splits go with them.
  - SplitStrategy and Category are Python enums so they can be imported by
    schemas and services without repeating string literals.
"""

from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


# ── Enum Definitions ───────────────────────────────────────────────────────

class SplitStrategy(str, enum.Enum):
    EQUAL      = "EQUAL"
    EXACT      = "EXACT"
    PERCENTAGE = "PERCENTAGE"


class Category(str, enum.Enum):
    FOOD          = "FOOD"
    TRANSPORT     = "TRANSPORT"
    ACCOMMODATION = "ACCOMMODATION"
    ENTERTAINMENT = "ENTERTAINMENT"
    OTHER         = "OTHER"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values, not names."""
    return [member.value for member in enum_cls]


# ── Model ──────────────────────────────────────────────────────────────────

class Expense(db.Model):
    __tablename__ = "expenses"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        CheckConstraint(
            "LENGTH(TRIM(description)) > 0",
            name="ck_expenses_description_nonempty",
        ),
        # list_expenses and the settlement breakdown order by date within a trip.
        Index("idx_expenses_trip_date", "trip_id", "expense_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    trip_id: Mapped[int] = mapped_column(
        ForeignKey("trips.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # ON DELETE RESTRICT — a member who paid for something cannot be removed.
    payer_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="RESTRICT"),
        nullable=False,
    )

    created_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("members.id", ondelete="SET NULL"),
        nullable=True,
    )

    description: Mapped[str] = mapped_column(String(255), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    split_strategy: Mapped[SplitStrategy] = mapped_column(
        Enum(
            SplitStrategy,
            name="split_strategy_enum",
            values_callable=_enum_values,
        ),
        nullable=False,
        default=SplitStrategy.EQUAL,
    )

    category: Mapped[Category] = mapped_column(
        Enum(
            Category,
            name="expense_category_enum",
            values_callable=_enum_values,
        ),
        nullable=False,
        default=Category.OTHER,
    )

    expense_date: Mapped[date] = mapped_column(Date, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # Set on every successful update.
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    trip: Mapped["Trip"] = relationship(  # noqa: F821
        "Trip",
        back_populates="expenses",
    )

    payer: Mapped["Member"] = relationship(  # noqa: F821
        "Member",
        foreign_keys=[payer_id],
    )

    created_by: Mapped["Member | None"] = relationship(  # noqa: F821
        "Member",
        foreign_keys=[created_by_id],
    )

    # Splits are owned by their expense.
    splits: Mapped[list["Split"]] = relationship(  # noqa: F821
        "Split",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="Split.id",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Expense id={self.id} "
            f"trip_id={self.trip_id} "
            f"amount={self.amount} "
            f"strategy={self.split_strategy.value}>"
        )
