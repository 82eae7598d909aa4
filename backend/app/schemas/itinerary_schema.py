"""
schemas/itinerary_schema.py — Marshmallow schemas for itinerary endpoints.

Validation responsibility:
  - This file: types, lengths, HH:MM times, end_time after start_time when
    both are sent.
  - services/itinerary_service.py:
      - DATE_OUTSIDE_TRIP (needs the trip's dates)
      - INVALID_TIME_RANGE on PATCH when only one time is sent
      - FORBIDDEN (access, member record, ownership)

The request field is "date"; it loads into `item_date`.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates_schema

from backend.app.errors import ErrorCode


def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _check_time_order(data: dict) -> None:
    start, end = data.get("start_time"), data.get("end_time")
    if start is not None and end is not None and end <= start:
        raise ValidationError({"end_time": [ErrorCode.INVALID_TIME_RANGE]})


_activity_validators = [
    validate.Length(min=1, max=255, error="Activity must be between 1 and 255 characters."),
    _validate_non_empty_after_trim,
]


class CreateItineraryItemSchema(Schema):
    """POST /trips/:id/itinerary"""

    item_date = fields.Date(required=True, data_key="date")

    start_time = fields.Time(required=True)

    end_time = fields.Time(required=False, load_default=None, allow_none=True)

    activity = fields.Str(required=True, validate=_activity_validators)

    location = fields.Str(
        required=False,
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=255),
    )

    category = fields.Str(
        required=False,
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=50),
    )

    description = fields.Str(required=False, load_default=None, allow_none=True)

    @validates_schema
    def validate_times(self, data: dict, **kwargs) -> None:
        _check_time_order(data)


class PatchItineraryItemSchema(Schema):
    """PATCH /itinerary/:id — every field optional; end_time may be cleared with null."""

    item_date = fields.Date(required=False, data_key="date")

    start_time = fields.Time(required=False)

    end_time = fields.Time(required=False, allow_none=True)

    activity = fields.Str(required=False, validate=_activity_validators)

    location = fields.Str(required=False, allow_none=True, validate=validate.Length(max=255))

    category = fields.Str(required=False, allow_none=True, validate=validate.Length(max=50))

    description = fields.Str(required=False, allow_none=True)

    @validates_schema
    def validate_times(self, data: dict, **kwargs) -> None:
        _check_time_order(data)
