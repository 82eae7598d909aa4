"""
routes/invitations.py — Invitation route handlers.

Registered at url_prefix=/api/v1: this blueprint owns the trip-scoped
paths (/trips/:id/invitations) and the invitation-ID paths.

Layer rules:
  - Parse, validate, call ONE service, commit, notify, return envelope.
  - No business logic. No DB queries.
  - Accept and cancel invalidate the trip snapshot again after the commit.

Endpoints:
  POST   /trips/:id/invitations      → 201  invite by email (creator)
  GET    /trips/:id/invitations      → 200  pending invitations (creator)
  GET    /invitations/mine           → 200  pending invitations for the caller's email
  POST   /invitations/:id/accept     → 200  join the trip; returns the new member
  POST   /invitations/:id/reject     → 200  decline
  DELETE /invitations/:id            → 200  cancel a pending invitation (creator)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.app.extensions import db, get_notifier, get_trip_cache
from backend.app.middleware.auth_middleware import require_auth
from backend.app.schemas.trip_schema import InviteMemberSchema
from backend.app.services import invitation_service, trip_service
from backend.app.services.notifier import LedgerEvent, dispatch

invitations_bp = Blueprint("invitations", __name__)


# ── Trip-scoped routes ─────────────────────────────────────────────────────

@invitations_bp.route("/trips/<int:trip_id>/invitations", methods=["POST"])
@require_auth
def invite_member(trip_id: int):
    data = InviteMemberSchema().load(request.get_json(force=True) or {})
    invitation = invitation_service.invite_member(
        trip_id=trip_id,
        principal=g.principal,
        data=data,
        session=db.session,
        cache=get_trip_cache(),
    )
    db.session.commit()

    body = invitation_service.build_invitation_dict(invitation)
    dispatch(get_notifier(), LedgerEvent.INVITATION_SENT, trip_id, {
        "invitation_id": invitation.id,
        "email": invitation.invited_email,
    })
    return jsonify({"data": body, "warnings": []}), 201


@invitations_bp.route("/trips/<int:trip_id>/invitations", methods=["GET"])
@require_auth
def list_pending_invitations(trip_id: int):
    invitations = invitation_service.list_pending_invitations(
        trip_id=trip_id,
        principal=g.principal,
        session=db.session,
        cache=get_trip_cache(),
    )
    return jsonify({
        "data": [invitation_service.build_invitation_dict(i) for i in invitations],
        "warnings": [],
    }), 200


# ── Invitation-ID routes ───────────────────────────────────────────────────

@invitations_bp.route("/invitations/mine", methods=["GET"])
@require_auth
def list_my_invitations():
    invitations = invitation_service.list_my_invitations(principal=g.principal, session=db.session)
    return jsonify({
        "data": [invitation_service.build_invitation_dict(i) for i in invitations],
        "warnings": [],
    }), 200


@invitations_bp.route("/invitations/<int:invitation_id>/accept", methods=["POST"])
@require_auth
def accept_invitation(invitation_id: int):
    """POST /invitations/:id/accept — Only the invited email may accept."""
    cache = get_trip_cache()
    member = invitation_service.accept_invitation(
        invitation_id=invitation_id,
        principal=g.principal,
        session=db.session,
        cache=cache,
    )
    db.session.commit()
    cache.invalidate(member.trip_id)

    body = trip_service.build_member_dict(member)
    dispatch(get_notifier(), LedgerEvent.MEMBER_JOINED, member.trip_id, {
        "member_id": member.id,
        "user_id": member.user_id,
        "invitation_id": invitation_id,
    })
    return jsonify({"data": body, "warnings": []}), 200


@invitations_bp.route("/invitations/<int:invitation_id>/reject", methods=["POST"])
@require_auth
def reject_invitation(invitation_id: int):
    invitation = invitation_service.reject_invitation(
        invitation_id=invitation_id,
        principal=g.principal,
        session=db.session,
    )
    db.session.commit()

    body = invitation_service.build_invitation_dict(invitation)
    dispatch(get_notifier(), LedgerEvent.INVITATION_REJECTED, invitation.trip_id, {
        "invitation_id": invitation.id,
    })
    return jsonify({"data": body, "warnings": []}), 200


@invitations_bp.route("/invitations/<int:invitation_id>", methods=["DELETE"])
@require_auth
def cancel_invitation(invitation_id: int):
    cache = get_trip_cache()
    trip_id = invitation_service.cancel_invitation(
        invitation_id=invitation_id,
        principal=g.principal,
        session=db.session,
        cache=cache,
    )
    db.session.commit()
    cache.invalidate(trip_id)

    dispatch(get_notifier(), LedgerEvent.INVITATION_CANCELLED, trip_id, {
        "invitation_id": invitation_id,
    })
    return jsonify({
        "data": {"cancelled": True, "invitation_id": invitation_id, "trip_id": trip_id},
        "warnings": [],
    }), 200
