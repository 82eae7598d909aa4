"""
models/settlement.py — Settlement table definition.

No business logic. No imports from services or routes.

A settlement row is a materialized aggregate, not a payment record:
  amount = sum of the member's split amounts across every expense of the trip.

  - UNIQUE(trip_id, member_id): exactly one current row per member. The
    settlement ledger upserts these rows wholesale on every recalculation;
    no history is kept here.
  - Both FKs are ON DELETE CASCADE — rows belong to the trip and member.
  - `amount` uses Numeric(12, 2) and may be zero.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Numeric, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


class Settlement(db.Model):
    __tablename__ = "settlements"

    __table_args__ = (
        UniqueConstraint("trip_id", "member_id", name="uq_settlements_trip_member"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    trip_id: Mapped[int] = mapped_column(
        ForeignKey("trips.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    trip: Mapped["Trip"] = relationship(  # noqa: F821
        "Trip",
        back_populates="settlements",
    )

    member: Mapped["Member"] = relationship("Member")  # noqa: F821

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Settlement id={self.id} "
            f"trip_id={self.trip_id} "
            f"member_id={self.member_id} "
            f"amount={self.amount}>"
        )
