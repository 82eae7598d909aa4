"""
errors.py — AppError base class and error code registry.

Every error returned by the trip ledger must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Error kinds map to stable HTTP statuses so clients can branch without
parsing message text:
  NotFound        → 404
  Forbidden       → 403
  InvalidSplit    → 422 (carries computed totals in `details`)
  DegenerateInput → 400
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
            details: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field    # which request field caused the error
        self.details     = details  # e.g. computed totals for split errors

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        if self.details is not None:
            payload["details"] = self.details
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by kind. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_AMOUNT_PRECISION   = "INVALID_AMOUNT_PRECISION"
    INVALID_CATEGORY           = "INVALID_CATEGORY"
    INVALID_SPLIT_STRATEGY     = "INVALID_SPLIT_STRATEGY"
    INVALID_DATE_RANGE         = "INVALID_DATE_RANGE"
    INVALID_TIME_RANGE         = "INVALID_TIME_RANGE"
    DATE_OUTSIDE_TRIP          = "DATE_OUTSIDE_TRIP"
    CANNOT_INVITE_SELF         = "CANNOT_INVITE_SELF"

    # ── Degenerate Input (400) ─────────────────────────────────────────────
    NO_MEMBERS_TO_SPLIT        = "NO_MEMBERS_TO_SPLIT"
    NON_POSITIVE_AMOUNT        = "NON_POSITIVE_AMOUNT"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    ALREADY_MEMBER             = "ALREADY_MEMBER"
    MEMBER_HAS_EXPENSES        = "MEMBER_HAS_EXPENSES"
    INVITATION_ALREADY_PENDING = "INVITATION_ALREADY_PENDING"
    INVITATION_NOT_PENDING     = "INVITATION_NOT_PENDING"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    TRIP_NOT_FOUND             = "TRIP_NOT_FOUND"
    EXPENSE_NOT_FOUND          = "EXPENSE_NOT_FOUND"
    MEMBER_NOT_FOUND           = "MEMBER_NOT_FOUND"
    SETTLEMENT_NOT_FOUND       = "SETTLEMENT_NOT_FOUND"
    INVITATION_NOT_FOUND       = "INVITATION_NOT_FOUND"
    ITINERARY_ITEM_NOT_FOUND   = "ITINERARY_ITEM_NOT_FOUND"

    # ── Invalid Split (422) ────────────────────────────────────────────────
    SPLITS_REQUIRED            = "SPLITS_REQUIRED"
    SPLIT_SUM_MISMATCH         = "SPLIT_SUM_MISMATCH"
    PERCENTAGE_SUM_MISMATCH    = "PERCENTAGE_SUM_MISMATCH"
    SPLIT_MEMBER_NOT_IN_TRIP   = "SPLIT_MEMBER_NOT_IN_TRIP"
    DUPLICATE_SPLIT_MEMBER     = "DUPLICATE_SPLIT_MEMBER"
    PAYER_NOT_MEMBER           = "PAYER_NOT_MEMBER"

    # ── Business Rule Violations (422) ────────────────────────────────────
    CANNOT_REMOVE_CREATOR      = "CANNOT_REMOVE_CREATOR"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"


# ── Constructors for the recurring cases ───────────────────────────────────

def not_found(code: str, message: str) -> AppError:
    return AppError(code, message, 404)


def forbidden(message: str) -> AppError:
    return AppError(ErrorCode.FORBIDDEN, message, 403)


def invalid_split(
        code: str,
        message: str,
        details: dict | None = None,
        field: str | None = "splits",
) -> AppError:
    return AppError(code, message, 422, field=field, details=details)


def degenerate_input(code: str, message: str, field: str | None = None) -> AppError:
    return AppError(code, message, 400, field=field)
