"""
routes/settlements.py — Settlement route handlers.

Settlements are never written directly by clients; they are recomputed by
every expense mutation. These routes only read them, plus one creator-only
repair endpoint that reruns the same recompute.

Endpoints (base url_prefix=/api/v1/trips):
  GET   /trips/:id/settlements                → 200  all rows + total
  GET   /trips/:id/settlements/:member_id     → 200  one row + breakdown
  POST  /trips/:id/settlements/recalculate    → 200  full recompute (creator)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from backend.app.errors import forbidden
from backend.app.extensions import db, get_trip_cache
from backend.app.middleware.auth_middleware import require_auth
from backend.app.services import ledger_service
from backend.app.services.access_policy import Role

settlements_bp = Blueprint("settlements", __name__)


@settlements_bp.route("/<int:trip_id>/settlements", methods=["GET"])
@require_auth
def list_settlements(trip_id: int):
    ledger_service.require_trip_access(trip_id, g.principal, db.session, get_trip_cache())
    result = ledger_service.get_settlements(trip_id=trip_id, session=db.session)
    return jsonify({"data": result, "warnings": []}), 200


@settlements_bp.route("/<int:trip_id>/settlements/<int:member_id>", methods=["GET"])
@require_auth
def get_settlement(trip_id: int, member_id: int):
    """GET /trips/:id/settlements/:member_id — Row plus the splits behind it."""
    ledger_service.require_trip_access(trip_id, g.principal, db.session, get_trip_cache())
    result = ledger_service.get_settlement_detail(
        trip_id=trip_id,
        member_id=member_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@settlements_bp.route("/<int:trip_id>/settlements/recalculate", methods=["POST"])
@require_auth
def recalculate_settlements(trip_id: int):
    """POST /trips/:id/settlements/recalculate — Repair/backfill. Creator only."""
    _, access = ledger_service.require_trip_access(
        trip_id, g.principal, db.session, get_trip_cache()
    )
    if access.role != Role.CREATOR:
        raise forbidden("Only the trip creator can recalculate settlements.")

    ledger_service.recalculate_settlements(trip_id=trip_id, session=db.session)
    db.session.commit()

    result = ledger_service.get_settlements(trip_id=trip_id, session=db.session)
    return jsonify({"data": result, "warnings": []}), 200
