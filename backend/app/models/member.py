"""
models/member.py — Member table definition.

No business logic. No imports from services or routes.

Key design points:
  - email is the identity key inside a trip and is stored lower-cased.
    UNIQUE(trip_id, email) holds the one-member-per-email-per-trip rule
    that access_policy.resolve_member_id relies on (first match wins).
  - user_id is the account that accepted the invitation. A row is never
    re-linked to a different account (invitation_service.accept_invitation).
  - trip_id is ON DELETE CASCADE — members are owned by their trip.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


class Member(db.Model):
    __tablename__ = "members"

    __table_args__ = (
        UniqueConstraint("trip_id", "email", name="uq_members_trip_email"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    trip_id: Mapped[int] = mapped_column(
        ForeignKey("trips.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Linked account; set when the invitation is accepted.
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    email: Mapped[str] = mapped_column(String(255), nullable=False)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    trip: Mapped["Trip"] = relationship(  # noqa: F821
        "Trip",
        back_populates="members",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Member id={self.id} "
            f"trip_id={self.trip_id} "
            f"email={self.email!r}>"
        )
