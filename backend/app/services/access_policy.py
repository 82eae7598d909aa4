"""
services/access_policy.py — Trip access and ownership decisions.

Pure functions over a trip snapshot (anything with `owner_id` and `members`,
each member having `id` and `email`). Works the same on a TripSnapshot from
the cache and on an ORM Trip.

Roles:
  creator — principal.user_id == trip.owner_id   (checked by id, never email)
  member  — principal.email matches a member email, case-insensitively
  none    — neither

Modify rights:
  - Trip-level changes: creator only. Members never get them.
  - Owned resources (expenses, and any other row carrying a creator member id):
    creator always; otherwise only the member whose id is recorded as the
    resource's creator. One rule for every resource type.

Nothing here raises or performs I/O. A denial is a False / Role.NONE result;
callers decide whether that becomes 403 or 404.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable, Protocol


class Role(str, enum.Enum):
    CREATOR = "creator"
    MEMBER  = "member"
    NONE    = "none"


@dataclass(frozen=True)
class Principal:
    """The authenticated caller. Resolved by the auth layer before any service call."""
    user_id: int
    email: str


@dataclass(frozen=True)
class AccessResult:
    can_access: bool
    role: Role


class _MemberLike(Protocol):
    id: int
    email: str | None


class _TripLike(Protocol):
    owner_id: int
    members: Iterable[_MemberLike]


def _fold(email: str | None) -> str | None:
    return email.casefold() if email is not None else None


def resolve_member_id(email: str, members: Iterable[_MemberLike]) -> int | None:
    """
    Returns the id of the first member whose email matches `email`
    case-insensitively, or None.

    One member per email per trip is assumed (enforced by
    uq_members_trip_email), so "first match" is also the only match.
    """
    target = _fold(email)
    if not target:
        return None
    for member in members:
        if _fold(member.email) == target:
            return member.id
    return None


def evaluate_access(principal: Principal, trip: _TripLike) -> AccessResult:
    """Resolves the principal's role in the trip: creator, member or none."""
    if trip.owner_id == principal.user_id:
        return AccessResult(can_access=True, role=Role.CREATOR)

    if resolve_member_id(principal.email, trip.members) is not None:
        return AccessResult(can_access=True, role=Role.MEMBER)

    return AccessResult(can_access=False, role=Role.NONE)


def can_modify_trip(user_id: int, trip: _TripLike) -> bool:
    """Only the creator may change trip fields or its member set."""
    return trip.owner_id == user_id


def can_modify_owned_resource(
        principal: Principal,
        trip: _TripLike,
        resource_creator_member_id: int | None,
) -> bool:
    """
    Creator may modify any resource. A member may modify only resources whose
    recorded creator member id equals their own member id.
    """
    if trip.owner_id == principal.user_id:
        return True

    if resource_creator_member_id is None:
        return False

    member_id = resolve_member_id(principal.email, trip.members)
    if member_id is None:
        return False

    return member_id == resource_creator_member_id
