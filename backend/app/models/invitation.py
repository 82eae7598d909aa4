"""
models/invitation.py — Invitation table definition.

No business logic. No imports from services or routes.

Key design points:
  - An invitation is NOT a membership. Access checks only ever look at
    Member rows; the Member row is created when the invitee accepts.
  - invited_email is stored lower-cased. UNIQUE(trip_id, invited_email)
    keeps at most one invitation per email per trip; a rejected one is
    replaced when the creator invites again.
  - inviter_id is the creator's user id (auth service), not a FK.
  - Cancelled invitations are deleted, so there is no CANCELLED status.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


class InvitationStatus(str, enum.Enum):
    PENDING  = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class Invitation(db.Model):
    __tablename__ = "invitations"

    __table_args__ = (
        UniqueConstraint("trip_id", "invited_email", name="uq_invitations_trip_email"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    trip_id: Mapped[int] = mapped_column(
        ForeignKey("trips.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    inviter_id: Mapped[int] = mapped_column(Integer, nullable=False)

    invited_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # Display name proposed by the inviter; used for the member row on accept.
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    status: Mapped[InvitationStatus] = mapped_column(
        Enum(
            InvitationStatus,
            name="invitation_status_enum",
            values_callable=lambda cls: [m.value for m in cls],
        ),
        nullable=False,
        default=InvitationStatus.PENDING,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    responded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    trip: Mapped["Trip"] = relationship(  # noqa: F821
        "Trip",
        back_populates="invitations",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Invitation id={self.id} "
            f"trip_id={self.trip_id} "
            f"email={self.invited_email!r} "
            f"status={self.status.value}>"
        )
