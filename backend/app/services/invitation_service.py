"""
services/invitation_service.py — Trip invitations.

An invitation is a request to join, not a membership. The invitee has no
access to the trip until they accept; accepting is the only path that
creates a Member row for an invited email.

Lifecycle:
  PENDING → ACCEPTED   invitee accepts; Member row created and linked to
                       the invitee's user id.
  PENDING → REJECTED   invitee declines.
  PENDING → (deleted)  creator cancels.
  REJECTED / ACCEPTED → PENDING again when the creator re-invites an email
                       that is not currently a member.

Authorization rules:
  - Invite, list a trip's pending invitations, cancel: creator only.
  - Accept / reject: only the principal whose email the invitation was sent to.

Accept and cancel change what access checks see, so both invalidate the
trip snapshot here and the route invalidates again after its commit.

Layer rules:
  - No Flask imports. Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode, forbidden, not_found
from backend.app.models.invitation import Invitation, InvitationStatus
from backend.app.models.member import Member
from backend.app.services import settlement_ledger
from backend.app.services.access_policy import Principal, resolve_member_id
from backend.app.services.trip_cache import TripSnapshotCache
from backend.app.services.trip_service import get_trip_or_404, normalize_email, require_creator

logger = logging.getLogger(__name__)


def _get_invitation_or_404(invitation_id: int, session: Session) -> Invitation:
    invitation = session.get(Invitation, invitation_id)
    if invitation is None:
        raise not_found(
            ErrorCode.INVITATION_NOT_FOUND,
            f"Invitation {invitation_id} does not exist.",
        )
    return invitation


def _require_invitee(invitation: Invitation, principal: Principal) -> None:
    if normalize_email(principal.email) != invitation.invited_email:
        raise forbidden("This invitation is not addressed to you.")


def _require_pending(invitation: Invitation) -> None:
    if invitation.status != InvitationStatus.PENDING:
        raise AppError(
            ErrorCode.INVITATION_NOT_PENDING,
            f"Invitation {invitation.id} has already been {invitation.status.value.lower()}.",
            409,
        )


def build_invitation_dict(invitation: Invitation) -> dict:
    return {
        "id": invitation.id,
        "trip_id": invitation.trip_id,
        "trip_name": invitation.trip.name if invitation.trip is not None else None,
        "inviter_id": invitation.inviter_id,
        "email": invitation.invited_email,
        "name": invitation.name,
        "status": invitation.status.value,
        "created_at": invitation.created_at.isoformat() if invitation.created_at else None,
        "responded_at": invitation.responded_at.isoformat() if invitation.responded_at else None,
    }


# ── Creator side ───────────────────────────────────────────────────────────

def invite_member(
        trip_id: int,
        principal: Principal,
        data: dict,
        session: Session,
        cache: TripSnapshotCache,
) -> Invitation:
    """
    Sends an invitation to an email (creator only).

    Raises:
        AppError(CANNOT_INVITE_SELF, 400)
        AppError(ALREADY_MEMBER, 409)             — email already has a member row.
        AppError(INVITATION_ALREADY_PENDING, 409) — an open invitation exists.
    """
    require_creator(trip_id, principal, session, cache)
    trip = get_trip_or_404(trip_id, session)

    email = normalize_email(data["email"])
    if email == normalize_email(principal.email):
        raise AppError(
            ErrorCode.CANNOT_INVITE_SELF,
            "You cannot invite yourself.",
            400,
            field="email",
        )

    if resolve_member_id(email, trip.members) is not None:
        raise AppError(
            ErrorCode.ALREADY_MEMBER,
            f"{email} is already a member of trip {trip_id}.",
            409,
            field="email",
        )

    invitation = session.execute(
        select(Invitation).where(
            Invitation.trip_id == trip_id,
            Invitation.invited_email == email,
        )
    ).scalar_one_or_none()

    if invitation is not None and invitation.status == InvitationStatus.PENDING:
        raise AppError(
            ErrorCode.INVITATION_ALREADY_PENDING,
            f"An invitation to {email} is already pending.",
            409,
            field="email",
        )

    if invitation is None:
        invitation = Invitation(trip_id=trip_id, invited_email=email)
        session.add(invitation)

    # A declined or stale invitation is reopened in place.
    invitation.inviter_id = principal.user_id
    invitation.name = data.get("name")
    invitation.status = InvitationStatus.PENDING
    invitation.responded_at = None
    session.flush()

    logger.info("Invitation %s sent to %s for trip %s", invitation.id, email, trip_id)
    return invitation


def list_pending_invitations(
        trip_id: int,
        principal: Principal,
        session: Session,
        cache: TripSnapshotCache,
) -> list[Invitation]:
    """Open invitations of a trip, oldest first (creator only)."""
    require_creator(trip_id, principal, session, cache)
    stmt = (
        select(Invitation)
        .where(
            Invitation.trip_id == trip_id,
            Invitation.status == InvitationStatus.PENDING,
        )
        .order_by(Invitation.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def cancel_invitation(
        invitation_id: int,
        principal: Principal,
        session: Session,
        cache: TripSnapshotCache,
) -> int:
    """
    Withdraws a pending invitation (creator only).

    Returns:
        The trip id the invitation belonged to.
    """
    invitation = _get_invitation_or_404(invitation_id, session)
    trip_id = invitation.trip_id
    require_creator(trip_id, principal, session, cache)
    _require_pending(invitation)

    session.delete(invitation)
    session.flush()
    cache.invalidate(trip_id)
    return trip_id


# ── Invitee side ───────────────────────────────────────────────────────────

def list_my_invitations(principal: Principal, session: Session) -> list[Invitation]:
    """Pending invitations addressed to the principal's email, newest first."""
    stmt = (
        select(Invitation)
        .where(
            Invitation.invited_email == normalize_email(principal.email),
            Invitation.status == InvitationStatus.PENDING,
        )
        .order_by(Invitation.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


def accept_invitation(
        invitation_id: int,
        principal: Principal,
        session: Session,
        cache: TripSnapshotCache,
) -> Member:
    """
    Accepts an invitation and creates the caller's member row.

    A member row can already carry this email only if it was linked
    earlier; it is reused when it is unlinked or linked to the caller, and
    never re-pointed at a different account.

    Raises:
        AppError(INVITATION_NOT_FOUND, 404)
        AppError(FORBIDDEN, 403)              — invitation is for another email.
        AppError(INVITATION_NOT_PENDING, 409) — already accepted or rejected.
        AppError(ALREADY_MEMBER, 409)         — email is linked to another account.
    """
    invitation = _get_invitation_or_404(invitation_id, session)
    _require_invitee(invitation, principal)
    _require_pending(invitation)

    trip_id = invitation.trip_id
    member = session.execute(
        select(Member).where(
            Member.trip_id == trip_id,
            Member.email == invitation.invited_email,
        )
    ).scalar_one_or_none()

    if member is None:
        member = Member(
            trip_id=trip_id,
            user_id=principal.user_id,
            email=invitation.invited_email,
            name=invitation.name or invitation.invited_email.split("@")[0],
        )
        session.add(member)
    elif member.user_id is None:
        member.user_id = principal.user_id
    elif member.user_id != principal.user_id:
        raise AppError(
            ErrorCode.ALREADY_MEMBER,
            f"{invitation.invited_email} is already linked to another account in trip {trip_id}.",
            409,
        )

    invitation.status = InvitationStatus.ACCEPTED
    invitation.responded_at = datetime.now(timezone.utc)
    session.flush()

    cache.invalidate(trip_id)
    settlement_ledger.recalculate(trip_id, session)
    logger.info("User %s joined trip %s as member %s", principal.user_id, trip_id, member.id)
    return member


def reject_invitation(invitation_id: int, principal: Principal, session: Session) -> Invitation:
    """Declines an invitation. The member set is untouched."""
    invitation = _get_invitation_or_404(invitation_id, session)
    _require_invitee(invitation, principal)
    _require_pending(invitation)

    invitation.status = InvitationStatus.REJECTED
    invitation.responded_at = datetime.now(timezone.utc)
    session.flush()
    return invitation
