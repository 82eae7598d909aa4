"""
routes/itinerary.py — Itinerary route handlers.

Registered at url_prefix=/api/v1, owning /trips/:id/itinerary and
/itinerary/:id, the same split as routes/expenses.py.

Endpoints:
  POST   /trips/:id/itinerary   → 201  add item (caller needs a member record)
  GET    /trips/:id/itinerary   → 200  items by date, then start time
  GET    /itinerary/:id         → 200  one item
  PATCH  /itinerary/:id         → 200  partial update (creator, or the member who added it)
  DELETE /itinerary/:id         → 200  delete (creator, or the member who added it)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.app.extensions import db, get_trip_cache
from backend.app.middleware.auth_middleware import require_auth
from backend.app.schemas.itinerary_schema import (
    CreateItineraryItemSchema,
    PatchItineraryItemSchema,
)
from backend.app.services import itinerary_service

itinerary_bp = Blueprint("itinerary", __name__)


@itinerary_bp.route("/trips/<int:trip_id>/itinerary", methods=["POST"])
@require_auth
def create_item(trip_id: int):
    data = CreateItineraryItemSchema().load(request.get_json(force=True) or {})
    item = itinerary_service.create_item(
        trip_id=trip_id,
        principal=g.principal,
        data=data,
        session=db.session,
        cache=get_trip_cache(),
    )
    db.session.commit()
    return jsonify({"data": itinerary_service.build_item_dict(item), "warnings": []}), 201


@itinerary_bp.route("/trips/<int:trip_id>/itinerary", methods=["GET"])
@require_auth
def list_items(trip_id: int):
    items = itinerary_service.list_items(
        trip_id=trip_id,
        principal=g.principal,
        session=db.session,
        cache=get_trip_cache(),
    )
    return jsonify({
        "data": [itinerary_service.build_item_dict(i) for i in items],
        "warnings": [],
    }), 200


@itinerary_bp.route("/itinerary/<int:item_id>", methods=["GET"])
@require_auth
def get_item(item_id: int):
    item = itinerary_service.get_item(
        item_id=item_id,
        principal=g.principal,
        session=db.session,
        cache=get_trip_cache(),
    )
    return jsonify({"data": itinerary_service.build_item_dict(item), "warnings": []}), 200


@itinerary_bp.route("/itinerary/<int:item_id>", methods=["PATCH"])
@require_auth
def update_item(item_id: int):
    data = PatchItineraryItemSchema().load(request.get_json(force=True) or {})
    item = itinerary_service.update_item(
        item_id=item_id,
        principal=g.principal,
        data=data,
        session=db.session,
        cache=get_trip_cache(),
    )
    db.session.commit()
    return jsonify({"data": itinerary_service.build_item_dict(item), "warnings": []}), 200


@itinerary_bp.route("/itinerary/<int:item_id>", methods=["DELETE"])
@require_auth
def delete_item(item_id: int):
    trip_id = itinerary_service.delete_item(
        item_id=item_id,
        principal=g.principal,
        session=db.session,
        cache=get_trip_cache(),
    )
    db.session.commit()
    return jsonify({
        "data": {"deleted": True, "item_id": item_id, "trip_id": trip_id},
        "warnings": [],
    }), 200
