"""
services/itinerary_service.py — Itinerary items of a trip.

Authorization rules (same as expenses):
  - Create:  creator or member, and the caller must have a member record
             (it becomes the item's created_by_id).
  - Read:    creator or member.
  - Update / Delete: access_policy.can_modify_owned_resource.

Validation that needs stored state:
  - item_date within the trip's start and end dates → DATE_OUTSIDE_TRIP (400)
  - end_time after start_time after a partial PATCH  → INVALID_TIME_RANGE (400)

Layer rules:
  - No Flask imports. Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode, forbidden, not_found
from backend.app.models.itinerary import ItineraryItem
from backend.app.services.access_policy import (
    Principal,
    can_modify_owned_resource,
    resolve_member_id,
)
from backend.app.services.ledger_service import load_trip_snapshot, require_trip_access
from backend.app.services.trip_cache import TripSnapshot, TripSnapshotCache

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = (
    "item_date",
    "start_time",
    "end_time",
    "activity",
    "location",
    "category",
    "description",
)


def _get_item_or_404(item_id: int, session: Session) -> ItineraryItem:
    item = session.get(ItineraryItem, item_id)
    if item is None:
        raise not_found(
            ErrorCode.ITINERARY_ITEM_NOT_FOUND,
            f"Itinerary item {item_id} does not exist.",
        )
    return item


def _check_date_in_trip(item_date: date, snapshot: TripSnapshot) -> None:
    if not snapshot.start_date <= item_date <= snapshot.end_date:
        raise AppError(
            ErrorCode.DATE_OUTSIDE_TRIP,
            f"date must be between {snapshot.start_date.isoformat()} "
            f"and {snapshot.end_date.isoformat()}.",
            400,
            field="date",
        )


def _check_time_order(start_time: time, end_time: time | None) -> None:
    if end_time is not None and end_time <= start_time:
        raise AppError(
            ErrorCode.INVALID_TIME_RANGE,
            "end_time must be after start_time.",
            400,
            field="end_time",
        )


def build_item_dict(item: ItineraryItem) -> dict:
    return {
        "id": item.id,
        "trip_id": item.trip_id,
        "created_by_id": item.created_by_id,
        "date": item.item_date.isoformat(),
        "start_time": item.start_time.strftime("%H:%M"),
        "end_time": item.end_time.strftime("%H:%M") if item.end_time else None,
        "activity": item.activity,
        "location": item.location,
        "category": item.category,
        "description": item.description,
        "created_at": item.created_at.isoformat() if item.created_at else None,
        "updated_at": item.updated_at.isoformat() if item.updated_at else None,
    }


def create_item(
        trip_id: int,
        principal: Principal,
        data: dict,
        session: Session,
        cache: TripSnapshotCache,
) -> ItineraryItem:
    snapshot, _ = require_trip_access(trip_id, principal, session, cache)

    created_by_id = resolve_member_id(principal.email, snapshot.members)
    if created_by_id is None:
        raise forbidden("You must be a member of the trip to add itinerary items.")

    _check_date_in_trip(data["item_date"], snapshot)
    _check_time_order(data["start_time"], data.get("end_time"))

    item = ItineraryItem(trip_id=trip_id, created_by_id=created_by_id)
    for field in _EDITABLE_FIELDS:
        if field in data:
            setattr(item, field, data[field])
    session.add(item)
    session.flush()

    logger.info("Itinerary item %s added to trip %s", item.id, trip_id)
    return item


def list_items(
        trip_id: int,
        principal: Principal,
        session: Session,
        cache: TripSnapshotCache,
) -> list[ItineraryItem]:
    """All items of a trip in schedule order: date, then start time."""
    require_trip_access(trip_id, principal, session, cache)
    stmt = (
        select(ItineraryItem)
        .where(ItineraryItem.trip_id == trip_id)
        .order_by(
            ItineraryItem.item_date.asc(),
            ItineraryItem.start_time.asc(),
            ItineraryItem.id.asc(),
        )
    )
    return list(session.execute(stmt).scalars().all())


def get_item(
        item_id: int,
        principal: Principal,
        session: Session,
        cache: TripSnapshotCache,
) -> ItineraryItem:
    item = _get_item_or_404(item_id, session)
    require_trip_access(item.trip_id, principal, session, cache)
    return item


def update_item(
        item_id: int,
        principal: Principal,
        data: dict,
        session: Session,
        cache: TripSnapshotCache,
) -> ItineraryItem:
    """
    Partially updates an item. Date and time rules are checked against the
    merged result, so a PATCH carrying only end_time is compared with the
    stored start_time.
    """
    item = _get_item_or_404(item_id, session)
    snapshot = load_trip_snapshot(item.trip_id, session, cache)

    if not can_modify_owned_resource(principal, snapshot, item.created_by_id):
        raise forbidden("You can only modify itinerary items you created.")

    if "item_date" in data:
        _check_date_in_trip(data["item_date"], snapshot)
    _check_time_order(
        data.get("start_time", item.start_time),
        data["end_time"] if "end_time" in data else item.end_time,
    )

    for field in _EDITABLE_FIELDS:
        if field in data:
            setattr(item, field, data[field])
    item.updated_at = datetime.now(timezone.utc)
    session.flush()
    return item


def delete_item(
        item_id: int,
        principal: Principal,
        session: Session,
        cache: TripSnapshotCache,
) -> int:
    """
    Returns:
        The trip id the item belonged to.
    """
    item = _get_item_or_404(item_id, session)
    trip_id = item.trip_id
    snapshot = load_trip_snapshot(trip_id, session, cache)

    if not can_modify_owned_resource(principal, snapshot, item.created_by_id):
        raise forbidden("You can only delete itinerary items you created.")

    session.delete(item)
    session.flush()
    logger.info("Itinerary item %s deleted from trip %s", item_id, trip_id)
    return trip_id
