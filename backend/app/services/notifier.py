"""
services/notifier.py — Fire-and-forget ledger event notifications.

Push/email delivery lives outside this app. The ledger only *informs* a
notifier after a change has been committed; it never waits on it and a
delivery failure never fails the request.

dispatch() is the only entry point routes use. It swallows and logs any
exception raised by the notifier.
"""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class LedgerEvent:
    EXPENSE_RECORDED     = "EXPENSE_RECORDED"
    EXPENSE_UPDATED      = "EXPENSE_UPDATED"
    EXPENSE_DELETED      = "EXPENSE_DELETED"
    INVITATION_SENT      = "INVITATION_SENT"
    INVITATION_REJECTED  = "INVITATION_REJECTED"
    INVITATION_CANCELLED = "INVITATION_CANCELLED"
    MEMBER_JOINED        = "MEMBER_JOINED"
    MEMBER_REMOVED       = "MEMBER_REMOVED"
    TRIP_DELETED         = "TRIP_DELETED"


class Notifier(Protocol):
    def notify(self, event: str, trip_id: int, payload: dict) -> None: ...


class LoggingNotifier:
    """Default notifier: records the event in the application log."""

    def notify(self, event: str, trip_id: int, payload: dict) -> None:
        logger.info("Ledger event %s for trip %s: %s", event, trip_id, payload)


def dispatch(notifier: Notifier | None, event: str, trip_id: int, payload: dict | None = None) -> None:
    if notifier is None:
        return
    try:
        notifier.notify(event, trip_id, payload or {})
    except Exception:  # delivery problems must never reach the caller
        logger.exception("Notifier failed for %s on trip %s", event, trip_id)
