"""
models/split.py — Split table definition.

No business logic. No imports from services or routes.

Key design points:
  - `amount` uses Numeric(12, 2) — never Float.
  - `percentage` is informational only; `amount` is authoritative.
  - expense_id is ON DELETE CASCADE — splits are owned by their expense.
  - member_id is ON DELETE RESTRICT — a member with splits cannot be removed.
  - UNIQUE(expense_id, member_id): a member appears at most once per expense.

sum(splits.amount) == expense.amount is enforced by split_calculator at
create/update time, never assumed when reading old rows.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import ForeignKey, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


class Split(db.Model):
    __tablename__ = "splits"

    __table_args__ = (
        UniqueConstraint("expense_id", "member_id", name="uq_splits_expense_member"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    expense_id: Mapped[int] = mapped_column(
        ForeignKey("expenses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    percentage: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)

    # ── Relationships ──────────────────────────────────────────────────────

    expense: Mapped["Expense"] = relationship(  # noqa: F821
        "Expense",
        back_populates="splits",
    )

    member: Mapped["Member"] = relationship("Member")  # noqa: F821

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Split id={self.id} "
            f"expense_id={self.expense_id} "
            f"member_id={self.member_id} "
            f"amount={self.amount}>"
        )
