"""
routes/expenses.py — Expense route handlers.

Registered at url_prefix=/api/v1 (not /api/v1/expenses) because this blueprint
owns BOTH the trip-scoped paths (/trips/:id/expenses) and the expense-ID
paths (/expenses/:id).

Layer rules:
  - Parse, validate, call ONE service, commit, notify, return envelope.
  - No business logic. No DB queries.
  - Notifications go out only after the commit succeeded.

Endpoints:
  POST   /trips/:id/expenses   → 201  record expense (settlements refreshed)
  GET    /trips/:id/expenses   → 200  list expenses
  GET    /expenses/:id         → 200  get expense + splits
  PATCH  /expenses/:id         → 200  partial update (settlements refreshed)
  DELETE /expenses/:id         → 200  hard delete (settlements refreshed)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.app.extensions import db, get_notifier, get_trip_cache
from backend.app.middleware.auth_middleware import require_auth
from backend.app.models.expense import Expense
from backend.app.schemas.expense_schema import CreateExpenseSchema, PatchExpenseSchema
from backend.app.services import ledger_service
from backend.app.services.notifier import LedgerEvent, dispatch

expenses_bp = Blueprint("expenses", __name__)


def _serialize_expense(expense: Expense) -> dict:
    """Converts an Expense ORM object to a plain dict. Amounts as strings."""
    return {
        "id": expense.id,
        "trip_id": expense.trip_id,
        "payer_id": expense.payer_id,
        "payer_name": expense.payer.name,
        "created_by_id": expense.created_by_id,
        "description": expense.description,
        "amount": str(expense.amount),
        "split_strategy": expense.split_strategy.value,
        "category": expense.category.value,
        "expense_date": expense.expense_date.isoformat(),
        "created_at": expense.created_at.isoformat() if expense.created_at else None,
        "updated_at": expense.updated_at.isoformat() if expense.updated_at else None,
        "splits": [
            {
                "id": s.id,
                "member_id": s.member_id,
                "member_name": s.member.name,
                "amount": str(s.amount),
                "percentage": str(s.percentage) if s.percentage is not None else None,
            }
            for s in expense.splits
        ],
    }


# ── Trip-scoped expense routes ─────────────────────────────────────────────

@expenses_bp.route("/trips/<int:trip_id>/expenses", methods=["POST"])
@require_auth
def create_expense(trip_id: int):
    """POST /trips/:id/expenses — Record a new expense."""
    data = CreateExpenseSchema().load(request.get_json(force=True) or {})
    expense = ledger_service.create_expense(
        trip_id=trip_id,
        principal=g.principal,
        data=data,
        session=db.session,
        cache=get_trip_cache(),
    )
    db.session.commit()

    body = _serialize_expense(expense)
    dispatch(get_notifier(), LedgerEvent.EXPENSE_RECORDED, trip_id, {
        "expense_id": expense.id,
        "amount": body["amount"],
        "payer_id": expense.payer_id,
    })
    return jsonify({"data": body, "warnings": []}), 201


@expenses_bp.route("/trips/<int:trip_id>/expenses", methods=["GET"])
@require_auth
def list_expenses(trip_id: int):
    """GET /trips/:id/expenses — All expenses of a trip, newest first."""
    expenses = ledger_service.list_expenses(
        trip_id=trip_id,
        principal=g.principal,
        session=db.session,
        cache=get_trip_cache(),
    )
    return jsonify({
        "data": [_serialize_expense(e) for e in expenses],
        "warnings": [],
    }), 200


# ── Expense-ID routes ──────────────────────────────────────────────────────

@expenses_bp.route("/expenses/<int:expense_id>", methods=["GET"])
@require_auth
def get_expense(expense_id: int):
    expense = ledger_service.get_expense(
        expense_id=expense_id,
        principal=g.principal,
        session=db.session,
        cache=get_trip_cache(),
    )
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 200


@expenses_bp.route("/expenses/<int:expense_id>", methods=["PATCH"])
@require_auth
def update_expense(expense_id: int):
    """
    PATCH /expenses/:id — Partial update.
    Trip creator may edit any expense; members only the ones they recorded.
    """
    data = PatchExpenseSchema().load(request.get_json(force=True) or {})
    expense = ledger_service.update_expense(
        expense_id=expense_id,
        principal=g.principal,
        data=data,
        session=db.session,
        cache=get_trip_cache(),
    )
    db.session.commit()

    body = _serialize_expense(expense)
    dispatch(get_notifier(), LedgerEvent.EXPENSE_UPDATED, expense.trip_id, {
        "expense_id": expense.id,
        "amount": body["amount"],
    })
    return jsonify({"data": body, "warnings": []}), 200


@expenses_bp.route("/expenses/<int:expense_id>", methods=["DELETE"])
@require_auth
def delete_expense(expense_id: int):
    """DELETE /expenses/:id — Removes the expense and its splits."""
    trip_id = ledger_service.delete_expense(
        expense_id=expense_id,
        principal=g.principal,
        session=db.session,
        cache=get_trip_cache(),
    )
    db.session.commit()

    dispatch(get_notifier(), LedgerEvent.EXPENSE_DELETED, trip_id, {"expense_id": expense_id})
    return jsonify({
        "data": {
            "deleted": True,
            "expense_id": expense_id,
            "trip_id": trip_id,
        },
        "warnings": [],
    }), 200
