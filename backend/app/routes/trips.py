"""
routes/trips.py — Trip and membership route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries.
  - Routes that change trip fields or the member set invalidate the trip
    snapshot again after the commit; see services/trip_service.py.

Endpoints (base url_prefix=/api/v1/trips):
  POST   /trips                          → 201  create trip (caller = creator + first member)
  GET    /trips                          → 200  trips the caller created or belongs to
  GET    /trips/:id                      → 200  trip + members
  PATCH  /trips/:id                      → 200  update (creator)
  DELETE /trips/:id                      → 200  delete with everything in it (creator)
  GET    /trips/:id/access               → 200  caller's role and rights
  DELETE /trips/:id/members/:member_id   → 200  remove member (creator)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.app.extensions import db, get_notifier, get_trip_cache
from backend.app.middleware.auth_middleware import require_auth
from backend.app.schemas.trip_schema import CreateTripSchema, PatchTripSchema
from backend.app.services import trip_service
from backend.app.services.notifier import LedgerEvent, dispatch

trips_bp = Blueprint("trips", __name__)


@trips_bp.route("/", methods=["POST"])
@require_auth
def create_trip():
    """POST /trips — Create a trip. Caller becomes its creator and first member."""
    data = CreateTripSchema().load(request.get_json(force=True) or {})
    principal = g.principal
    trip = trip_service.create_trip(
        principal=principal,
        display_name=data.pop("creator_name", None) or principal.email.split("@")[0],
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": trip_service.build_trip_dict(trip, principal), "warnings": []}), 201


@trips_bp.route("/", methods=["GET"])
@require_auth
def list_trips():
    trips = trip_service.list_trips(principal=g.principal, session=db.session)
    return jsonify({
        "data": [trip_service.build_trip_dict(t, g.principal) for t in trips],
        "warnings": [],
    }), 200


@trips_bp.route("/<int:trip_id>", methods=["GET"])
@require_auth
def get_trip(trip_id: int):
    trip = trip_service.get_trip(
        trip_id=trip_id,
        principal=g.principal,
        session=db.session,
        cache=get_trip_cache(),
    )
    return jsonify({"data": trip_service.build_trip_dict(trip, g.principal), "warnings": []}), 200


@trips_bp.route("/<int:trip_id>", methods=["PATCH"])
@require_auth
def update_trip(trip_id: int):
    data = PatchTripSchema().load(request.get_json(force=True) or {})
    cache = get_trip_cache()
    trip = trip_service.update_trip(
        trip_id=trip_id,
        principal=g.principal,
        data=data,
        session=db.session,
        cache=cache,
    )
    db.session.commit()
    cache.invalidate(trip_id)
    return jsonify({"data": trip_service.build_trip_dict(trip, g.principal), "warnings": []}), 200


@trips_bp.route("/<int:trip_id>", methods=["DELETE"])
@require_auth
def delete_trip(trip_id: int):
    cache = get_trip_cache()
    trip_service.delete_trip(
        trip_id=trip_id,
        principal=g.principal,
        session=db.session,
        cache=cache,
    )
    db.session.commit()
    cache.invalidate(trip_id)

    dispatch(get_notifier(), LedgerEvent.TRIP_DELETED, trip_id)
    return jsonify({"data": {"deleted": True, "trip_id": trip_id}, "warnings": []}), 200


@trips_bp.route("/<int:trip_id>/access", methods=["GET"])
@require_auth
def check_access(trip_id: int):
    """GET /trips/:id/access — Never 403; a stranger sees can_access=false."""
    result = trip_service.describe_access(
        trip_id=trip_id,
        principal=g.principal,
        session=db.session,
        cache=get_trip_cache(),
    )
    return jsonify({"data": result, "warnings": []}), 200


# ── Membership ─────────────────────────────────────────────────────────────

@trips_bp.route("/<int:trip_id>/members/<int:member_id>", methods=["DELETE"])
@require_auth
def remove_member(trip_id: int, member_id: int):
    cache = get_trip_cache()
    trip_service.remove_member(
        trip_id=trip_id,
        member_id=member_id,
        principal=g.principal,
        session=db.session,
        cache=cache,
    )
    db.session.commit()
    cache.invalidate(trip_id)

    dispatch(get_notifier(), LedgerEvent.MEMBER_REMOVED, trip_id, {"member_id": member_id})
    return jsonify({
        "data": {"removed": True, "trip_id": trip_id, "member_id": member_id},
        "warnings": [],
    }), 200
