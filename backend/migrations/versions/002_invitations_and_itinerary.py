"""Invitations and itinerary items.

Revision: 002_invitations_and_itinerary
Revises:  001_initial_schema
Created:  2026-10-19

Creation order:
  1. invitation_status_enum
  2. invitations, itinerary_items
  3. Indexes

ON DELETE policies:
  invitations.trip_id            → CASCADE   (invitations owned by trip)
  itinerary_items.trip_id        → CASCADE   (items owned by trip)
  itinerary_items.created_by_id  → SET NULL  (creator-only edit afterwards)
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "002_invitations_and_itinerary"
down_revision: str | None = "001_initial_schema"
branch_labels: tuple | None = None
depends_on: tuple | None = None


invitation_status_enum = postgresql.ENUM(
    "PENDING", "ACCEPTED", "REJECTED",
    name="invitation_status_enum",
    create_type=False,
)


def upgrade() -> None:
    op.execute(
        "CREATE TYPE invitation_status_enum AS ENUM ('PENDING', 'ACCEPTED', 'REJECTED')"
    )

    # ── invitations ────────────────────────────────────────────────────────
    # UNIQUE(trip_id, invited_email): one invitation per email per trip.

    op.create_table(
        "invitations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "trip_id",
            sa.Integer(),
            sa.ForeignKey("trips.id", ondelete="CASCADE", name="fk_invitations_trip"),
            nullable=False,
        ),
        sa.Column("inviter_id", sa.Integer(), nullable=False),
        sa.Column("invited_email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(100), nullable=True),
        sa.Column("status", invitation_status_enum, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_invitations"),
        sa.UniqueConstraint("trip_id", "invited_email", name="uq_invitations_trip_email"),
    )

    # ── itinerary_items ────────────────────────────────────────────────────

    op.create_table(
        "itinerary_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "trip_id",
            sa.Integer(),
            sa.ForeignKey("trips.id", ondelete="CASCADE", name="fk_itinerary_items_trip"),
            nullable=False,
        ),
        sa.Column(
            "created_by_id",
            sa.Integer(),
            sa.ForeignKey("members.id", ondelete="SET NULL", name="fk_itinerary_items_created_by"),
            nullable=True,
        ),
        sa.Column("item_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=True),
        sa.Column("activity", sa.String(255), nullable=False),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("category", sa.String(50), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_itinerary_items"),
        sa.CheckConstraint(
            "LENGTH(TRIM(activity)) > 0",
            name="ck_itinerary_items_activity_nonempty",
        ),
        sa.CheckConstraint(
            "end_time IS NULL OR end_time > start_time",
            name="ck_itinerary_items_time_order",
        ),
    )

    op.create_index("ix_invitations_trip_id", "invitations", ["trip_id"])
    op.create_index("ix_invitations_invited_email", "invitations", ["invited_email"])
    op.create_index(
        "idx_itinerary_items_trip_date",
        "itinerary_items",
        ["trip_id", "item_date", "start_time"],
    )


def downgrade() -> None:
    op.drop_index("idx_itinerary_items_trip_date", table_name="itinerary_items")
    op.drop_index("ix_invitations_invited_email", table_name="invitations")
    op.drop_index("ix_invitations_trip_id", table_name="invitations")

    op.drop_table("itinerary_items")
    op.drop_table("invitations")

    op.execute("DROP TYPE IF EXISTS invitation_status_enum")
