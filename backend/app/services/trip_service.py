"""
services/trip_service.py — Trip lifecycle and member removal.

Every function here that changes trip fields or the member set calls
cache.invalidate(trip_id) before returning, and the route calls it again
once the commit has succeeded. The first call stops this request's own
later reads from seeing the old snapshot; the second drops any snapshot a
concurrent reader built from the pre-commit rows in the meantime.

Authorization rules:
  - Create:          any authenticated user; becomes owner AND first member.
  - Read / access:   creator or member.
  - Update / delete: creator only (access_policy.can_modify_trip).
  - Remove member:   creator only.
  - Joining a trip goes through invitation_service (invite, then accept).

Layer rules:
  - No Flask imports. Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode, forbidden, not_found
from backend.app.models.expense import Expense
from backend.app.models.itinerary import ItineraryItem
from backend.app.models.member import Member
from backend.app.models.split import Split
from backend.app.models.trip import Trip
from backend.app.services import settlement_ledger
from backend.app.services.access_policy import (
    Principal,
    can_modify_trip,
    evaluate_access,
    resolve_member_id,
)
from backend.app.services.ledger_service import load_trip_snapshot, require_trip_access
from backend.app.services.trip_cache import TripSnapshotCache

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_trip_or_404(trip_id: int, session: Session) -> Trip:
    trip = session.get(Trip, trip_id)
    if trip is None:
        raise not_found(ErrorCode.TRIP_NOT_FOUND, f"Trip {trip_id} does not exist.")
    return trip


def require_creator(trip_id: int, principal: Principal, session: Session, cache: TripSnapshotCache) -> None:
    """FORBIDDEN (403) unless the principal created the trip."""
    snapshot = load_trip_snapshot(trip_id, session, cache)
    if not can_modify_trip(principal.user_id, snapshot):
        raise forbidden("Only the trip creator can do this.")


def build_trip_dict(trip: Trip, principal: Principal | None = None) -> dict:
    """Serialises a Trip with its members. Adds the caller's role when given."""
    payload = {
        "id": trip.id,
        "name": trip.name,
        "description": trip.description,
        "location": trip.location,
        "owner_id": trip.owner_id,
        "start_date": trip.start_date.isoformat(),
        "end_date": trip.end_date.isoformat(),
        "status": trip.status.value,
        "created_at": trip.created_at.isoformat() if trip.created_at else None,
        "updated_at": trip.updated_at.isoformat() if trip.updated_at else None,
        "members": [build_member_dict(m) for m in trip.members],
    }
    if principal is not None:
        payload["role"] = evaluate_access(principal, trip).role.value
    return payload


def build_member_dict(member: Member) -> dict:
    return {
        "id": member.id,
        "trip_id": member.trip_id,
        "user_id": member.user_id,
        "email": member.email,
        "name": member.name,
    }


# ── Trip lifecycle ─────────────────────────────────────────────────────────

def create_trip(principal: Principal, display_name: str, data: dict, session: Session) -> Trip:
    """
    Creates a trip owned by the principal, together with the creator's own
    Member row so splits and settlements can reference the creator like
    anyone else.
    """
    trip = Trip(
        name=data["name"],
        description=data.get("description"),
        location=data.get("location"),
        owner_id=principal.user_id,
        start_date=data["start_date"],
        end_date=data["end_date"],
    )
    trip.members.append(Member(
        user_id=principal.user_id,
        email=normalize_email(principal.email),
        name=display_name,
    ))
    session.add(trip)
    session.flush()

    settlement_ledger.recalculate(trip.id, session)
    logger.info("Trip %s created by user %s", trip.id, principal.user_id)
    return trip


def get_trip(trip_id: int, principal: Principal, session: Session, cache: TripSnapshotCache) -> Trip:
    require_trip_access(trip_id, principal, session, cache)
    return get_trip_or_404(trip_id, session)


def describe_access(trip_id: int, principal: Principal, session: Session, cache: TripSnapshotCache) -> dict:
    """
    The caller's standing in a trip. Never raises FORBIDDEN; a stranger gets
    can_access False and role "none".
    """
    snapshot = load_trip_snapshot(trip_id, session, cache)
    access = evaluate_access(principal, snapshot)
    return {
        "trip_id": trip_id,
        "can_access": access.can_access,
        "role": access.role.value,
        "member_id": resolve_member_id(principal.email, snapshot.members),
        "can_modify_trip": can_modify_trip(principal.user_id, snapshot),
    }


def list_trips(principal: Principal, session: Session) -> list[Trip]:
    """Trips the principal created or is a member of, soonest start first."""
    member_trip_ids = select(Member.trip_id).where(
        func.lower(Member.email) == normalize_email(principal.email)
    )
    stmt = (
        select(Trip)
        .where(or_(Trip.owner_id == principal.user_id, Trip.id.in_(member_trip_ids)))
        .order_by(Trip.start_date.asc(), Trip.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def update_trip(
        trip_id: int,
        principal: Principal,
        data: dict,
        session: Session,
        cache: TripSnapshotCache,
) -> Trip:
    require_creator(trip_id, principal, session, cache)
    trip = get_trip_or_404(trip_id, session)

    for field in ("name", "description", "location", "start_date", "end_date"):
        if field in data:
            setattr(trip, field, data[field])

    if trip.end_date < trip.start_date:
        raise AppError(
            ErrorCode.INVALID_DATE_RANGE,
            "end_date must be on or after start_date.",
            400,
            field="end_date",
        )

    trip.updated_at = datetime.now(timezone.utc)
    session.flush()
    cache.invalidate(trip_id)
    return trip


def delete_trip(trip_id: int, principal: Principal, session: Session, cache: TripSnapshotCache) -> None:
    """Deletes the trip with its members, expenses, splits and settlements."""
    require_creator(trip_id, principal, session, cache)
    trip = get_trip_or_404(trip_id, session)
    session.delete(trip)
    session.flush()
    cache.invalidate(trip_id)
    logger.info("Trip %s deleted by user %s", trip_id, principal.user_id)


# ── Membership ─────────────────────────────────────────────────────────────

def remove_member(
        trip_id: int,
        member_id: int,
        principal: Principal,
        session: Session,
        cache: TripSnapshotCache,
) -> None:
    """
    Removes a member (creator only).

    Raises:
        AppError(MEMBER_NOT_FOUND, 404)
        AppError(CANNOT_REMOVE_CREATOR, 422) — the creator's own row stays.
        AppError(MEMBER_HAS_EXPENSES, 409)   — member paid for or shares in an
                                               expense; removing them would
                                               break that expense's split total.
    """
    require_creator(trip_id, principal, session, cache)
    trip = get_trip_or_404(trip_id, session)

    member = session.get(Member, member_id)
    if member is None or member.trip_id != trip_id:
        raise not_found(
            ErrorCode.MEMBER_NOT_FOUND,
            f"Member {member_id} does not belong to trip {trip_id}.",
        )

    if member.user_id == trip.owner_id:
        raise AppError(
            ErrorCode.CANNOT_REMOVE_CREATOR,
            "The trip creator cannot be removed from their own trip.",
            422,
        )

    paid = session.execute(
        select(Expense.id).where(Expense.payer_id == member_id).limit(1)
    ).first()
    shared = session.execute(
        select(Split.id).where(Split.member_id == member_id).limit(1)
    ).first()
    if paid is not None or shared is not None:
        raise AppError(
            ErrorCode.MEMBER_HAS_EXPENSES,
            f"Member {member_id} is part of recorded expenses and cannot be removed.",
            409,
        )

    for expense in session.execute(
        select(Expense).where(Expense.created_by_id == member_id)
    ).scalars():
        expense.created_by_id = None
    for item in session.execute(
        select(ItineraryItem).where(ItineraryItem.created_by_id == member_id)
    ).scalars():
        item.created_by_id = None

    trip.members.remove(member)
    session.flush()

    cache.invalidate(trip_id)
    settlement_ledger.recalculate(trip_id, session)
