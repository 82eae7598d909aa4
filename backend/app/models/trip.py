"""
models/trip.py — Trip table definition.

No business logic beyond the derived status. No imports from services or routes.

Key design points:
  - owner_id is the creator's user id. Users live in the auth service, so
    this is a plain integer, not a foreign key.
  - The creator is ALSO a Member row (created with the trip by
    trip_service.create_trip), so splits and settlements treat every
    participant the same way.
  - A trip owns its members, invitations, expenses, itinerary items and
    settlements; deleting the trip deletes all of them.
  - status is derived from the dates on every read; it is never stored.
"""

from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import CheckConstraint, Date, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


class TripStatus(str, enum.Enum):
    UPCOMING  = "UPCOMING"
    ONGOING   = "ONGOING"
    COMPLETED = "COMPLETED"


def compute_trip_status(start_date: date, end_date: date, today: date | None = None) -> TripStatus:
    """UPCOMING before the start date, ONGOING through the end date, COMPLETED after."""
    today = today or date.today()
    if today < start_date:
        return TripStatus.UPCOMING
    if today <= end_date:
        return TripStatus.ONGOING
    return TripStatus.COMPLETED


class Trip(db.Model):
    __tablename__ = "trips"

    __table_args__ = (
        CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_trips_name_nonempty"),
        CheckConstraint("end_date >= start_date", name="ck_trips_date_order"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    location: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Creator's user id (auth service). Checked by id, never by email.
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    end_date: Mapped[date] = mapped_column(Date, nullable=False)

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
    # All owned: deleting the trip deletes them through the ORM cascade.

    members: Mapped[list["Member"]] = relationship(  # noqa: F821
        "Member",
        back_populates="trip",
        cascade="all, delete-orphan",
        order_by="Member.id",
    )

    expenses: Mapped[list["Expense"]] = relationship(  # noqa: F821
        "Expense",
        back_populates="trip",
        cascade="all, delete-orphan",
    )

    settlements: Mapped[list["Settlement"]] = relationship(  # noqa: F821
        "Settlement",
        back_populates="trip",
        cascade="all, delete-orphan",
    )

    invitations: Mapped[list["Invitation"]] = relationship(  # noqa: F821
        "Invitation",
        back_populates="trip",
        cascade="all, delete-orphan",
    )

    itinerary_items: Mapped[list["ItineraryItem"]] = relationship(  # noqa: F821
        "ItineraryItem",
        back_populates="trip",
        cascade="all, delete-orphan",
    )

    @property
    def status(self) -> TripStatus:
        return compute_trip_status(self.start_date, self.end_date)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Trip id={self.id} name={self.name!r} owner_id={self.owner_id}>"
