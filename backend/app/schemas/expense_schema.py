"""
schemas/expense_schema.py — Marshmallow schemas for expense endpoints.

Validation responsibility:
  - This file (request shape, 400):
      - Field types, lengths, enum values, decimal precision
      - Each split entry carries the field its strategy needs
        (amount for EXACT, percentage for PERCENTAGE)
      - Non-empty-after-trim enforcement for description
  - services/split_calculator.py (needs Decimal arithmetic / trip members):
      - SPLITS_REQUIRED, SPLIT_SUM_MISMATCH, PERCENTAGE_SUM_MISMATCH (422)
      - DUPLICATE_SPLIT_MEMBER, SPLIT_MEMBER_NOT_IN_TRIP (422)
  - services/ledger_service.py (needs DB lookups):
      - PAYER_NOT_MEMBER (422), FORBIDDEN (403)

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import Schema, ValidationError, fields, validate, validates_schema

from backend.app.errors import ErrorCode
from backend.app.models.expense import Category, SplitStrategy


# ── Shared validators ──────────────────────────────────────────────────────

def _validate_monetary_amount(value: Decimal) -> None:
    """
    Strictly positive, at most 2 decimal places. Over-precise input is
    rejected with INVALID_AMOUNT_PRECISION, never rounded.
    """
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")

    # Decimal("10.123").as_tuple().exponent == -3 → reject
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_percentage(value: Decimal) -> None:
    if value <= Decimal("0") or value > Decimal("100"):
        raise ValidationError("Percentage must be greater than 0 and at most 100.")
    if value.as_tuple().exponent < -2:
        raise ValidationError("Percentage must have at most 2 decimal places.")


def _validate_non_empty_after_trim(value: str) -> None:
    """validate.Length(min=1) alone lets "   " through."""
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _validate_entries_for_strategy(strategy: SplitStrategy | None, splits: list[dict] | None) -> None:
    """
    EXACT entries need `amount`, PERCENTAGE entries need `percentage`.
    A missing splits array is left to the calculator (SPLITS_REQUIRED, 422).
    """
    if not splits or strategy in (None, SplitStrategy.EQUAL):
        return

    needed = "amount" if strategy == SplitStrategy.EXACT else "percentage"
    for index, entry in enumerate(splits):
        if entry.get(needed) is None:
            raise ValidationError(
                {"splits": [f"Entry {index} needs '{needed}' for the {strategy.value} strategy."]}
            )


# ── Sub-schema: one entry in the `splits` array ───────────────────────────

class SplitEntrySchema(Schema):
    """
    {"member_id": 3, "amount": "40.00"} or {"member_id": 3, "percentage": "25"}.
    Whether member_id belongs to the trip is checked by the calculator.
    """

    member_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="member_id must be a positive integer."),
    )

    amount = fields.Decimal(
        required=False,
        load_default=None,
        allow_none=True,
        validate=_validate_monetary_amount,
    )

    percentage = fields.Decimal(
        required=False,
        load_default=None,
        allow_none=True,
        validate=_validate_percentage,
    )


# ── Create expense ─────────────────────────────────────────────────────────

class CreateExpenseSchema(Schema):
    """
    POST /trips/:id/expenses

      - payer_id defaults to the caller's own member id (service).
      - split_strategy defaults to EQUAL; EQUAL ignores any splits array.
      - category defaults to OTHER.
    """

    payer_id = fields.Int(
        required=False,
        load_default=None,
        allow_none=True,
        strict=True,
        validate=validate.Range(min=1, error="payer_id must be a positive integer."),
    )

    description = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=255,
                error="Description must be between 1 and 255 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    amount = fields.Decimal(
        required=True,
        validate=_validate_monetary_amount,
    )

    split_strategy = fields.Enum(
        SplitStrategy,
        load_default=SplitStrategy.EQUAL,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_STRATEGY},
    )

    category = fields.Enum(
        Category,
        load_default=Category.OTHER,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_CATEGORY},
    )

    expense_date = fields.Date(required=True)

    splits = fields.List(
        fields.Nested(SplitEntrySchema),
        load_default=None,
    )

    @validates_schema
    def validate_split_entries(self, data: dict, **kwargs) -> None:
        _validate_entries_for_strategy(data.get("split_strategy"), data.get("splits"))


# ── Patch expense ──────────────────────────────────────────────────────────

class PatchExpenseSchema(Schema):
    """
    PATCH /expenses/:id — every field optional, only provided fields change.

    If amount, split_strategy or splits is present the splits are recomputed;
    for EXACT and PERCENTAGE that needs the splits array again (the service
    raises SPLITS_REQUIRED otherwise).
    """

    payer_id = fields.Int(
        required=False,
        strict=True,
        validate=validate.Range(min=1, error="payer_id must be a positive integer."),
    )

    description = fields.Str(
        required=False,
        validate=[
            validate.Length(
                min=1,
                max=255,
                error="Description must be between 1 and 255 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    amount = fields.Decimal(
        required=False,
        validate=_validate_monetary_amount,
    )

    split_strategy = fields.Enum(
        SplitStrategy,
        required=False,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_STRATEGY},
    )

    category = fields.Enum(
        Category,
        required=False,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_CATEGORY},
    )

    expense_date = fields.Date(required=False)

    splits = fields.List(
        fields.Nested(SplitEntrySchema),
        required=False,
    )

    @validates_schema
    def validate_split_entries(self, data: dict, **kwargs) -> None:
        # Without split_strategy the stored strategy applies; the calculator
        # rejects entries missing their field in that case.
        _validate_entries_for_strategy(data.get("split_strategy"), data.get("splits"))
