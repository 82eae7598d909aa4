"""
tests/integration/test_ledger_rollback.py — Settlement recalculation failures.

An expense write and the settlement recalculation share one transaction.
When the recalculation raises, the request must answer 500 and leave the
expense, its splits and the stored settlements exactly as they were.
"""

from __future__ import annotations

import pytest

from backend.app.extensions import NOTIFIER_KEY
from backend.app.services import settlement_ledger

from .conftest import add_member, auth_headers, make_expense, make_trip, settlements_by_member, token_for


class RecordingNotifier:
    def __init__(self) -> None:
        self.events: list[str] = []

    def notify(self, event, trip_id, payload):
        self.events.append(event)


def _failing_recalculate(trip_id, session):
    raise RuntimeError("ledger write failed")


@pytest.fixture
def ledger(app, client, monkeypatch):
    """Alice and Bob with one 60.00 expense already recorded."""
    alice = token_for(app, 1, "alice@example.com")
    bob = token_for(app, 2, "bob@example.com")
    trip = make_trip(client, alice, creator_name="Alice")
    assert add_member(client, alice, trip["id"], "bob@example.com", "Bob").status_code == 200
    expense = make_expense(client, alice, trip["id"], amount="60.00").get_json()["data"]

    notifier = RecordingNotifier()
    monkeypatch.setitem(app.extensions, NOTIFIER_KEY, notifier)
    return {
        "trip_id": trip["id"],
        "alice": alice,
        "bob": bob,
        "expense": expense,
        "notifier": notifier,
    }


def _expenses(client, ledger) -> list[dict]:
    resp = client.get(
        f"/api/v1/trips/{ledger['trip_id']}/expenses",
        headers=auth_headers(ledger["alice"]),
    )
    assert resp.status_code == 200
    return resp.get_json()["data"]


def _assert_internal_error(resp) -> None:
    assert resp.status_code == 500
    assert resp.get_json()["error"]["code"] == "INTERNAL_ERROR"


def test_create_rolls_back_when_recalculation_fails(client, ledger, monkeypatch):
    before = settlements_by_member(client, ledger["alice"], ledger["trip_id"])
    monkeypatch.setattr(settlement_ledger, "recalculate", _failing_recalculate)

    resp = make_expense(client, ledger["bob"], ledger["trip_id"], amount="40.00")

    _assert_internal_error(resp)
    assert _expenses(client, ledger) == [ledger["expense"]]
    assert settlements_by_member(client, ledger["alice"], ledger["trip_id"]) == before
    assert ledger["notifier"].events == []


def test_update_rolls_back_when_recalculation_fails(client, ledger, monkeypatch):
    before = settlements_by_member(client, ledger["alice"], ledger["trip_id"])
    monkeypatch.setattr(settlement_ledger, "recalculate", _failing_recalculate)

    resp = client.patch(
        f"/api/v1/expenses/{ledger['expense']['id']}",
        json={"amount": "90.00", "description": "Changed"},
        headers=auth_headers(ledger["alice"]),
    )

    _assert_internal_error(resp)
    stored = _expenses(client, ledger)
    assert stored == [ledger["expense"]]
    assert [s["amount"] for s in stored[0]["splits"]] == ["30.00", "30.00"]
    assert settlements_by_member(client, ledger["alice"], ledger["trip_id"]) == before
    assert ledger["notifier"].events == []


def test_delete_rolls_back_when_recalculation_fails(client, ledger, monkeypatch):
    before = settlements_by_member(client, ledger["alice"], ledger["trip_id"])
    monkeypatch.setattr(settlement_ledger, "recalculate", _failing_recalculate)

    resp = client.delete(
        f"/api/v1/expenses/{ledger['expense']['id']}",
        headers=auth_headers(ledger["alice"]),
    )

    _assert_internal_error(resp)
    assert _expenses(client, ledger) == [ledger["expense"]]
    assert settlements_by_member(client, ledger["alice"], ledger["trip_id"]) == before
    assert ledger["notifier"].events == []
