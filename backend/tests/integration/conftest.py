"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing"), backed
    by in-memory SQLite unless TEST_DATABASE_URL points elsewhere.
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order and the trip
    snapshot cache is emptied, so tests are isolated.
  - Tokens are minted here with PyJWT; the app only verifies them.

Helper functions (not fixtures) are provided for common operations:
  - token_for(app, user_id, email)  → signed access token
  - auth_headers(token)             → {"Authorization": "Bearer <token>"}
  - make_trip(client, token, ...)   → trip dict
  - invite(client, token, ...)      → HTTP response
  - accept(client, token, inv_id)   → HTTP response
  - add_member(client, token, ...)  → invite + accept as the invitee
  - make_expense(client, token, ...) → HTTP response
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from sqlalchemy import text

from backend.app import create_app
from backend.app.extensions import TRIP_CACHE_KEY
from backend.app.extensions import db as _db


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """Deletes all rows after every test, children before parents."""
    yield

    with app.app_context():
        _db.session.rollback()
        _db.session.execute(text("DELETE FROM splits"))
        _db.session.execute(text("DELETE FROM settlements"))
        _db.session.execute(text("DELETE FROM expenses"))
        _db.session.execute(text("DELETE FROM itinerary_items"))
        _db.session.execute(text("DELETE FROM invitations"))
        _db.session.execute(text("DELETE FROM members"))
        _db.session.execute(text("DELETE FROM trips"))
        _db.session.commit()

    app.extensions[TRIP_CACHE_KEY].backend.clear()


@pytest.fixture
def client(app):
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def token_for(app, user_id: int, email: str, expires_in: int = 3600) -> str:
    payload = {
        "sub": str(user_id),
        "email": email,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, app.config["JWT_SECRET_KEY"], algorithm="HS256")


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def make_trip(
    client,
    token: str,
    name: str = "Lisbon",
    start_date: str = "2026-07-01",
    end_date: str = "2026-07-05",
    creator_name: str | None = None,
) -> dict:
    """Creates a trip; the token owner becomes its creator and first member."""
    body = {"name": name, "start_date": start_date, "end_date": end_date}
    if creator_name is not None:
        body["creator_name"] = creator_name
    resp = client.post("/api/v1/trips/", json=body, headers=auth_headers(token))
    assert resp.status_code == 201, f"make_trip failed: {resp.get_json()}"
    return resp.get_json()["data"]


# User ids the shared `tokens` fixtures use, so a helper that accepts an
# invitation on someone's behalf signs in as the same account.
KNOWN_USER_IDS = {
    "alice@example.com": 1,
    "bob@example.com": 2,
    "carol@example.com": 3,
    "dave@example.com": 4,
    "eve@example.com": 9,
}


def invite(client, token: str, trip_id: int, email: str, name: str | None = "Member"):
    body = {"email": email}
    if name is not None:
        body["name"] = name
    return client.post(
        f"/api/v1/trips/{trip_id}/invitations",
        json=body,
        headers=auth_headers(token),
    )


def accept(client, token: str, invitation_id: int):
    return client.post(
        f"/api/v1/invitations/{invitation_id}/accept",
        headers=auth_headers(token),
    )


def add_member(client, token: str, trip_id: int, email: str, name: str = "Member"):
    """
    Invites `email` and accepts as that person. Returns the accept response
    (member dict), or the invite response when the invite itself failed.
    """
    invited = invite(client, token, trip_id, email, name)
    if invited.status_code != 201:
        return invited
    user_id = KNOWN_USER_IDS.get(email.strip().lower(), 100)
    invitee_token = token_for(client.application, user_id, email)
    return accept(client, invitee_token, invited.get_json()["data"]["id"])


def make_expense(
    client,
    token: str,
    trip_id: int,
    amount: str = "100.00",
    split_strategy: str = "EQUAL",
    splits: list | None = None,
    description: str = "Dinner",
    expense_date: str = "2026-07-02",
    **extra,
):
    body = {
        "description": description,
        "amount": amount,
        "split_strategy": split_strategy,
        "expense_date": expense_date,
        **extra,
    }
    if splits is not None:
        body["splits"] = splits
    return client.post(
        f"/api/v1/trips/{trip_id}/expenses",
        json=body,
        headers=auth_headers(token),
    )


def settlements_by_member(client, token: str, trip_id: int) -> dict:
    """{member_id: amount string} from the settlements endpoint."""
    resp = client.get(f"/api/v1/trips/{trip_id}/settlements", headers=auth_headers(token))
    assert resp.status_code == 200, resp.get_json()
    return {row["member_id"]: row["amount"] for row in resp.get_json()["data"]["settlements"]}
