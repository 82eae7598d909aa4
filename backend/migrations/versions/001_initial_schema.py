"""Initial schema — trips, members, expenses, splits, settlements.

Revision: 001_initial_schema
Created:  2026-10-18

Append-only: never edit this file after it has been applied to a database.
Schema changes go in a NEW migration file.

Creation order:
  1. PostgreSQL enum types (must exist before the expenses table)
  2. Tables in FK dependency order (trips → members → expenses → splits,
     settlements)
  3. Indexes

ON DELETE policies:
  members.trip_id        → CASCADE   (members owned by trip)
  expenses.trip_id       → CASCADE   (expenses owned by trip)
  expenses.payer_id      → RESTRICT  (a payer cannot be removed)
  expenses.created_by_id → SET NULL  (creator-only edit afterwards)
  splits.expense_id      → CASCADE   (splits owned by expense)
  splits.member_id       → RESTRICT  (a member with splits cannot be removed)
  settlements.*          → CASCADE   (derived rows; recomputed anyway)
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: tuple | None = None
depends_on: tuple | None = None


split_strategy_enum = postgresql.ENUM(
    "EQUAL", "EXACT", "PERCENTAGE",
    name="split_strategy_enum",
    create_type=False,
)

expense_category_enum = postgresql.ENUM(
    "FOOD", "TRANSPORT", "ACCOMMODATION", "ENTERTAINMENT", "OTHER",
    name="expense_category_enum",
    create_type=False,
)


def upgrade() -> None:
    # ── Step 1: PostgreSQL enum types ─────────────────────────────────────
    op.execute(
        "CREATE TYPE split_strategy_enum AS ENUM ('EQUAL', 'EXACT', 'PERCENTAGE')"
    )
    op.execute(
        "CREATE TYPE expense_category_enum AS ENUM ("
        "'FOOD', 'TRANSPORT', 'ACCOMMODATION', 'ENTERTAINMENT', 'OTHER'"
        ")"
    )

    # ── Step 2: trips ──────────────────────────────────────────────────────
    # owner_id is the creator's user id from the identity service — no FK.

    op.create_table(
        "trips",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_trips"),
        sa.CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_trips_name_nonempty"),
        sa.CheckConstraint("end_date >= start_date", name="ck_trips_date_order"),
    )

    # ── Step 3: members ────────────────────────────────────────────────────
    # UNIQUE(trip_id, email): one member per email per trip.

    op.create_table(
        "members",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "trip_id",
            sa.Integer(),
            sa.ForeignKey("trips.id", ondelete="CASCADE", name="fk_members_trip"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column(
            "joined_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_members"),
        sa.UniqueConstraint("trip_id", "email", name="uq_members_trip_email"),
    )

    # ── Step 4: expenses ───────────────────────────────────────────────────

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "trip_id",
            sa.Integer(),
            sa.ForeignKey("trips.id", ondelete="CASCADE", name="fk_expenses_trip"),
            nullable=False,
        ),
        sa.Column(
            "payer_id",
            sa.Integer(),
            sa.ForeignKey("members.id", ondelete="RESTRICT", name="fk_expenses_payer"),
            nullable=False,
        ),
        sa.Column(
            "created_by_id",
            sa.Integer(),
            sa.ForeignKey("members.id", ondelete="SET NULL", name="fk_expenses_created_by"),
            nullable=True,
        ),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("split_strategy", split_strategy_enum, nullable=False),
        sa.Column("category", expense_category_enum, nullable=False),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_expenses"),
        sa.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        sa.CheckConstraint(
            "LENGTH(TRIM(description)) > 0",
            name="ck_expenses_description_nonempty",
        ),
    )

    # ── Step 5: splits ─────────────────────────────────────────────────────

    op.create_table(
        "splits",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "expense_id",
            sa.Integer(),
            sa.ForeignKey("expenses.id", ondelete="CASCADE", name="fk_splits_expense"),
            nullable=False,
        ),
        sa.Column(
            "member_id",
            sa.Integer(),
            sa.ForeignKey("members.id", ondelete="RESTRICT", name="fk_splits_member"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("percentage", sa.Numeric(5, 2), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_splits"),
        sa.UniqueConstraint("expense_id", "member_id", name="uq_splits_expense_member"),
    )

    # ── Step 6: settlements ────────────────────────────────────────────────
    # One materialized row per (trip, member); rewritten by every recalculation.

    op.create_table(
        "settlements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "trip_id",
            sa.Integer(),
            sa.ForeignKey("trips.id", ondelete="CASCADE", name="fk_settlements_trip"),
            nullable=False,
        ),
        sa.Column(
            "member_id",
            sa.Integer(),
            sa.ForeignKey("members.id", ondelete="CASCADE", name="fk_settlements_member"),
            nullable=False,
        ),
        sa.Column(
            "amount",
            sa.Numeric(12, 2),
            nullable=False,
            server_default=sa.text("0.00"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_settlements"),
        sa.UniqueConstraint("trip_id", "member_id", name="uq_settlements_trip_member"),
    )

    # ── Step 7: indexes ────────────────────────────────────────────────────

    op.create_index("ix_trips_owner_id", "trips", ["owner_id"])
    op.create_index("ix_members_trip_id", "members", ["trip_id"])
    op.create_index("ix_expenses_trip_id", "expenses", ["trip_id"])
    op.create_index("idx_expenses_trip_date", "expenses", ["trip_id", "expense_date"])
    op.create_index("ix_splits_expense_id", "splits", ["expense_id"])
    op.create_index("ix_splits_member_id", "splits", ["member_id"])
    op.create_index("ix_settlements_trip_id", "settlements", ["trip_id"])


def downgrade() -> None:
    """Drop everything in reverse dependency order."""
    op.drop_index("ix_settlements_trip_id", table_name="settlements")
    op.drop_index("ix_splits_member_id", table_name="splits")
    op.drop_index("ix_splits_expense_id", table_name="splits")
    op.drop_index("idx_expenses_trip_date", table_name="expenses")
    op.drop_index("ix_expenses_trip_id", table_name="expenses")
    op.drop_index("ix_members_trip_id", table_name="members")
    op.drop_index("ix_trips_owner_id", table_name="trips")

    op.drop_table("settlements")
    op.drop_table("splits")
    op.drop_table("expenses")
    op.drop_table("members")
    op.drop_table("trips")

    op.execute("DROP TYPE IF EXISTS expense_category_enum")
    op.execute("DROP TYPE IF EXISTS split_strategy_enum")
