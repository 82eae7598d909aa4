"""
models/itinerary.py — Itinerary item table definition.

No business logic. No imports from services or routes.

Key design points:
  - Owned resource like an expense: created_by_id is the member who added
    it, and access_policy.can_modify_owned_resource decides who may change it.
  - item_date must fall inside the trip's dates; checked by the service
    because it needs the trip row.
  - end_time is optional; when present it must be after start_time.
"""

from __future__ import annotations

from datetime import date, datetime, time

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    Time,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


class ItineraryItem(db.Model):
    __tablename__ = "itinerary_items"

    __table_args__ = (
        CheckConstraint(
            "LENGTH(TRIM(activity)) > 0",
            name="ck_itinerary_items_activity_nonempty",
        ),
        CheckConstraint(
            "end_time IS NULL OR end_time > start_time",
            name="ck_itinerary_items_time_order",
        ),
        Index("idx_itinerary_items_trip_date", "trip_id", "item_date", "start_time"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    trip_id: Mapped[int] = mapped_column(
        ForeignKey("trips.id", ondelete="CASCADE"),
        nullable=False,
    )

    created_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("members.id", ondelete="SET NULL"),
        nullable=True,
    )

    item_date: Mapped[date] = mapped_column(Date, nullable=False)

    start_time: Mapped[time] = mapped_column(Time, nullable=False)

    end_time: Mapped[time | None] = mapped_column(Time, nullable=True)

    activity: Mapped[str] = mapped_column(String(255), nullable=False)

    location: Mapped[str | None] = mapped_column(String(255), nullable=True)

    category: Mapped[str | None] = mapped_column(String(50), nullable=True)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

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
        back_populates="itinerary_items",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<ItineraryItem id={self.id} "
            f"trip_id={self.trip_id} "
            f"date={self.item_date} "
            f"activity={self.activity!r}>"
        )
