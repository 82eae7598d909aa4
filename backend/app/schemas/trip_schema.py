"""
schemas/trip_schema.py — Marshmallow schemas for trip and invitation endpoints.

Validation responsibility:
  - This file: field types, string lengths, non-empty checks (including
    trim), date ordering when both dates are sent.
  - services/trip_service.py:
      - FORBIDDEN (creator-only operations)
      - CANNOT_REMOVE_CREATOR, MEMBER_HAS_EXPENSES
      - Date ordering on PATCH when only one date is sent (needs the stored row)
  - services/invitation_service.py:
      - CANNOT_INVITE_SELF, ALREADY_MEMBER, INVITATION_ALREADY_PENDING

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, post_load, validate, validates_schema

from backend.app.errors import ErrorCode


def _validate_non_empty_after_trim(value: str) -> None:
    """Mirrors the DB CHECK(LENGTH(TRIM(...)) > 0) constraint at the API layer."""
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _check_date_order(data: dict) -> None:
    start, end = data.get("start_date"), data.get("end_date")
    if start is not None and end is not None and end < start:
        raise ValidationError({"end_date": [ErrorCode.INVALID_DATE_RANGE]})


_name_field_validators = [
    validate.Length(min=1, max=100, error="Name must be between 1 and 100 characters."),
    _validate_non_empty_after_trim,
]


class CreateTripSchema(Schema):
    """
    POST /trips

    creator_name is the display name of the creator's own member row;
    the route falls back to the local part of the caller's email.
    """

    name = fields.Str(required=True, validate=_name_field_validators)

    description = fields.Str(required=False, load_default=None, allow_none=True)

    location = fields.Str(
        required=False,
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=255),
    )

    start_date = fields.Date(required=True)

    end_date = fields.Date(required=True)

    creator_name = fields.Str(
        required=False,
        load_default=None,
        validate=_name_field_validators,
    )

    @validates_schema
    def validate_dates(self, data: dict, **kwargs) -> None:
        _check_date_order(data)


class PatchTripSchema(Schema):
    """PATCH /trips/:id — every field optional."""

    name = fields.Str(required=False, validate=_name_field_validators)

    description = fields.Str(required=False, allow_none=True)

    location = fields.Str(required=False, allow_none=True, validate=validate.Length(max=255))

    start_date = fields.Date(required=False)

    end_date = fields.Date(required=False)

    @validates_schema
    def validate_dates(self, data: dict, **kwargs) -> None:
        _check_date_order(data)


class InviteMemberSchema(Schema):
    """
    POST /trips/:id/invitations — creator only (checked in the service).

    name is the display name proposed for the member row; when omitted the
    local part of the email is used on accept.
    """

    name = fields.Str(required=False, load_default=None, validate=_name_field_validators)

    email = fields.Email(required=True, validate=validate.Length(max=255))

    @post_load
    def normalize_email(self, data: dict, **kwargs) -> dict:
        data["email"] = data["email"].strip().lower()
        return data
