"""
tests/unit/test_validation_schemas.py — Unit tests for the marshmallow schemas.

What this file proves:
  - Every schema accepts valid input without raising
  - Field-level rules (type, length, enum, decimal precision, date order,
    per-strategy entry fields) are enforced by schemas
  - Rules that need Decimal totals or trip membership are NOT tested here;
    they belong to the split calculator and the services
  - Error codes carried in ValidationErrors match the constants in errors.py

No database, no Flask application context: the schemas inherit from
marshmallow.Schema directly.
"""

from __future__ import annotations

from datetime import date, time
from decimal import Decimal

import pytest
from marshmallow import ValidationError

from backend.app.errors import ErrorCode
from backend.app.models.expense import Category, SplitStrategy
from backend.app.schemas.expense_schema import (
    CreateExpenseSchema,
    PatchExpenseSchema,
    SplitEntrySchema,
)
from backend.app.schemas.itinerary_schema import (
    CreateItineraryItemSchema,
    PatchItineraryItemSchema,
)
from backend.app.schemas.trip_schema import CreateTripSchema, InviteMemberSchema, PatchTripSchema


# ═══════════════════════════════════════════════════════════════════════════
# SplitEntrySchema
# ═══════════════════════════════════════════════════════════════════════════

class TestSplitEntrySchema:

    def test_amount_entry(self):
        result = SplitEntrySchema().load({"member_id": 3, "amount": "40.00"})
        assert result == {"member_id": 3, "amount": Decimal("40.00"), "percentage": None}

    def test_percentage_entry(self):
        result = SplitEntrySchema().load({"member_id": 3, "percentage": "33.33"})
        assert result["percentage"] == Decimal("33.33")
        assert result["amount"] is None

    def test_float_member_id_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            SplitEntrySchema().load({"member_id": 1.0, "amount": "1.00"})
        assert "member_id" in exc_info.value.messages

    def test_percentage_above_100_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            SplitEntrySchema().load({"member_id": 1, "percentage": "100.5"})
        assert "percentage" in exc_info.value.messages


# ═══════════════════════════════════════════════════════════════════════════
# CreateExpenseSchema
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateExpenseSchema:

    BASE = {
        "description": "Dinner",
        "amount": "100.00",
        "expense_date": "2026-08-02",
    }

    def _load(self, **overrides):
        return CreateExpenseSchema().load({**self.BASE, **overrides})

    def test_defaults(self):
        result = self._load()
        assert result["amount"] == Decimal("100.00")
        assert isinstance(result["amount"], Decimal)
        assert result["split_strategy"] == SplitStrategy.EQUAL
        assert result["category"] == Category.OTHER
        assert result["expense_date"] == date(2026, 8, 2)
        assert result["payer_id"] is None
        assert result["splits"] is None

    def test_exact_with_amounts(self):
        result = self._load(
            split_strategy="EXACT",
            splits=[{"member_id": 1, "amount": "40.00"}, {"member_id": 2, "amount": "60.00"}],
        )
        assert result["split_strategy"] == SplitStrategy.EXACT
        assert [s["amount"] for s in result["splits"]] == [Decimal("40.00"), Decimal("60.00")]

    def test_exact_entry_without_amount_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            self._load(split_strategy="EXACT", splits=[{"member_id": 1, "percentage": "100"}])
        assert "splits" in exc_info.value.messages

    def test_percentage_entry_without_percentage_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            self._load(split_strategy="PERCENTAGE", splits=[{"member_id": 1, "amount": "1.00"}])
        assert "splits" in exc_info.value.messages

    def test_exact_without_splits_is_left_to_the_calculator(self):
        result = self._load(split_strategy="EXACT")
        assert result["splits"] is None

    def test_three_decimal_places_rejected_with_precision_code(self):
        with pytest.raises(ValidationError) as exc_info:
            self._load(amount="10.123")
        assert exc_info.value.messages["amount"] == [ErrorCode.INVALID_AMOUNT_PRECISION]

    @pytest.mark.parametrize("amount", ["0", "0.00", "-1.00"])
    def test_non_positive_amount_rejected(self, amount):
        with pytest.raises(ValidationError) as exc_info:
            self._load(amount=amount)
        assert "amount" in exc_info.value.messages

    def test_unknown_strategy_rejected_with_code(self):
        with pytest.raises(ValidationError) as exc_info:
            self._load(split_strategy="SHARES")
        assert exc_info.value.messages["split_strategy"] == [ErrorCode.INVALID_SPLIT_STRATEGY]

    def test_unknown_category_rejected_with_code(self):
        with pytest.raises(ValidationError) as exc_info:
            self._load(category="UTILITIES")
        assert exc_info.value.messages["category"] == [ErrorCode.INVALID_CATEGORY]

    def test_blank_description_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            self._load(description="   ")
        assert "description" in exc_info.value.messages

    def test_missing_date_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            CreateExpenseSchema().load({"description": "x", "amount": "1.00"})
        assert "expense_date" in exc_info.value.messages


# ═══════════════════════════════════════════════════════════════════════════
# PatchExpenseSchema
# ═══════════════════════════════════════════════════════════════════════════

class TestPatchExpenseSchema:

    def test_empty_payload_is_valid(self):
        assert PatchExpenseSchema().load({}) == {}

    def test_only_provided_fields_are_returned(self):
        result = PatchExpenseSchema().load({"description": "Taxi", "category": "TRANSPORT"})
        assert result == {"description": "Taxi", "category": Category.TRANSPORT}

    def test_percentage_switch_checks_entries(self):
        with pytest.raises(ValidationError):
            PatchExpenseSchema().load({
                "split_strategy": "PERCENTAGE",
                "splits": [{"member_id": 1, "amount": "5.00"}],
            })

    def test_precision_rule_applies_to_patch(self):
        with pytest.raises(ValidationError) as exc_info:
            PatchExpenseSchema().load({"amount": "1.001"})
        assert exc_info.value.messages["amount"] == [ErrorCode.INVALID_AMOUNT_PRECISION]


# ═══════════════════════════════════════════════════════════════════════════
# Trip schemas
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateTripSchema:

    BASE = {"name": "Lisbon", "start_date": "2026-07-01", "end_date": "2026-07-05"}

    def test_valid_payload(self):
        result = CreateTripSchema().load(self.BASE)
        assert result["name"] == "Lisbon"
        assert result["start_date"] == date(2026, 7, 1)
        assert result["creator_name"] is None

    def test_single_day_trip_allowed(self):
        CreateTripSchema().load({**self.BASE, "end_date": "2026-07-01"})

    def test_end_before_start_rejected_with_code(self):
        with pytest.raises(ValidationError) as exc_info:
            CreateTripSchema().load({**self.BASE, "end_date": "2026-06-30"})
        assert exc_info.value.messages["end_date"] == [ErrorCode.INVALID_DATE_RANGE]

    def test_name_too_long_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            CreateTripSchema().load({**self.BASE, "name": "x" * 101})
        assert "name" in exc_info.value.messages


class TestPatchTripSchema:

    def test_single_date_is_accepted(self):
        assert PatchTripSchema().load({"end_date": "2026-01-01"}) == {"end_date": date(2026, 1, 1)}

    def test_both_dates_out_of_order_rejected(self):
        with pytest.raises(ValidationError):
            PatchTripSchema().load({"start_date": "2026-02-02", "end_date": "2026-02-01"})


class TestInviteMemberSchema:

    def test_email_is_lower_cased(self):
        result = InviteMemberSchema().load({"name": "Bob", "email": "Bob@Example.COM"})
        assert result["email"] == "bob@example.com"

    def test_invalid_email_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            InviteMemberSchema().load({"name": "Bob", "email": "not-an-email"})
        assert "email" in exc_info.value.messages

    def test_name_is_optional(self):
        assert InviteMemberSchema().load({"email": "carol@example.com"}) == {
            "email": "carol@example.com",
            "name": None,
        }

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            InviteMemberSchema().load({"name": "   ", "email": "carol@example.com"})
        assert "name" in exc_info.value.messages


# ═══════════════════════════════════════════════════════════════════════════
# Itinerary schemas
# ═══════════════════════════════════════════════════════════════════════════

class TestItinerarySchemas:

    def test_create_loads_date_into_item_date(self):
        result = CreateItineraryItemSchema().load({
            "date": "2026-07-02",
            "start_time": "09:30",
            "end_time": "11:00",
            "activity": "Tram 28",
        })
        assert result["item_date"] == date(2026, 7, 2)
        assert result["start_time"] == time(9, 30)
        assert result["end_time"] == time(11, 0)
        assert result["location"] is None

    @pytest.mark.parametrize("end_time", ["09:30", "08:00"])
    def test_end_time_not_after_start_is_rejected(self, end_time):
        with pytest.raises(ValidationError) as exc_info:
            CreateItineraryItemSchema().load({
                "date": "2026-07-02",
                "start_time": "09:30",
                "end_time": end_time,
                "activity": "Tram 28",
            })
        assert exc_info.value.messages["end_time"] == [ErrorCode.INVALID_TIME_RANGE]

    def test_blank_activity_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            CreateItineraryItemSchema().load({
                "date": "2026-07-02",
                "start_time": "09:30",
                "activity": "  ",
            })
        assert "activity" in exc_info.value.messages

    def test_patch_allows_clearing_end_time(self):
        assert PatchItineraryItemSchema().load({"end_time": None}) == {"end_time": None}

    def test_patch_single_time_is_accepted(self):
        assert PatchItineraryItemSchema().load({"end_time": "10:00"}) == {"end_time": time(10, 0)}
