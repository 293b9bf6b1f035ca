"""Household sharing: invitations, roles and data-owner resolution."""

from __future__ import annotations

import logging
from typing import Any, Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from ..errors import Conflict, Forbidden, NotFound, ValidationError
from ..models import HouseholdMember, User
from ..timeutils import utcnow
from .auth import normalize_email

logger = logging.getLogger(__name__)

MEMBER_ROLES = ("admin", "member")
INVITATION_MAX_AGE = 7 * 24 * 3600
_INVITE_SALT = "spare-invite"


def _serializer(secret_key: str) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(secret_key, salt=_INVITE_SALT)


def _role(raw: Any) -> str:
    role = str(raw or "member").strip().lower()
    if role not in MEMBER_ROLES:
        raise ValidationError("Invalid role", {"role": ["Role must be admin or member."]})
    return role


def serialize(member: HouseholdMember) -> dict[str, Any]:
    data = member.model_dump(mode="json", exclude={"invitation_token"})
    return data


def list_members(ctx, *, owner_id: int) -> dict[str, Any]:
    household = ctx.member_repo.get_or_create_household(owner_id=owner_id)
    return {
        "household": household.model_dump(mode="json"),
        "members": [serialize(m) for m in ctx.member_repo.list_all(user_id=owner_id)],
    }


def invite(ctx, *, owner: User, data: dict[str, Any]) -> HouseholdMember:
    """Create a pending membership and its signed invitation token."""

    email = normalize_email(str(data.get("email") or ""))
    if email == normalize_email(owner.email):
        raise ValidationError("You cannot invite yourself")
    if ctx.member_repo.find_by_email(email, owner_id=owner.id) is not None:
        raise Conflict("This person has already been invited")
    household = ctx.member_repo.get_or_create_household(owner_id=owner.id)
    member = HouseholdMember(
        household_id=household.id,
        owner_id=owner.id,
        email=email,
        name=str(data.get("name") or "").strip()[:128],
        role=_role(data.get("role")),
    )
    member = ctx.member_repo.create(member)
    member.invitation_token = _serializer(ctx.config.SECRET_KEY).dumps(
        {"member_id": member.id, "email": email}
    )
    member = ctx.member_repo.update(member)
    logger.info("Household invitation created", extra={"owner_id": owner.id, "member_id": member.id})
    return member


def invitation_url(ctx, member: HouseholdMember) -> str:
    return f"{ctx.config.APP_URL}/members/accept?token={member.invitation_token}"


def accept(ctx, *, token: str, user: User) -> HouseholdMember:
    """Activate an invitation for the logged-in user whose email it was sent to."""

    try:
        data = _serializer(ctx.config.SECRET_KEY).loads(token, max_age=INVITATION_MAX_AGE)
    except SignatureExpired as exc:
        raise ValidationError("This invitation has expired") from exc
    except BadSignature as exc:
        raise NotFound("Invitation not found") from exc

    member = ctx.member_repo.get_by_token(token)
    if member is None or member.id != data.get("member_id"):
        raise NotFound("Invitation not found")
    if member.status == "active":
        raise Conflict("Invitation already accepted")
    if normalize_email(user.email) != member.email:
        raise Forbidden("This invitation was sent to a different email address")
    if member.owner_id == user.id:
        raise ValidationError("You cannot join your own household")
    if ctx.member_repo.active_membership(member_user_id=user.id) is not None:
        raise Conflict("You already belong to a household")

    member.member_user_id = user.id
    member.status = "active"
    member.accepted_at = utcnow()
    member.invitation_token = None
    if not member.name:
        member.name = user.name
    member = ctx.member_repo.update(member)
    logger.info("Household invitation accepted", extra={"member_id": member.id, "user_id": user.id})
    return member


def update_role(ctx, member_id: int, *, owner_id: int, role: Any) -> HouseholdMember:
    member = ctx.member_repo.get_by_id(member_id, user_id=owner_id)
    if member is None:
        raise NotFound("Member not found")
    member.role = _role(role)
    return ctx.member_repo.update(member)


def remove(ctx, member_id: int, *, owner_id: int) -> None:
    if not ctx.member_repo.delete(member_id, user_id=owner_id):
        raise NotFound("Member not found")
    logger.info("Household member removed", extra={"owner_id": owner_id, "member_id": member_id})


def leave(ctx, *, user_id: int) -> None:
    membership = ctx.member_repo.active_membership(member_user_id=user_id)
    if membership is None:
        raise NotFound("You are not a member of another household")
    ctx.member_repo.delete(membership.id, user_id=membership.owner_id)


def resolve_owner_id(ctx, user_id: int) -> int:
    """Whose data ``user_id`` operates on: the household owner when a member."""

    membership = ctx.member_repo.active_membership(member_user_id=user_id)
    return membership.owner_id if membership is not None else user_id


def membership_role(ctx, user_id: int) -> Optional[str]:
    """``owner`` for users acting on their own data, else the member role."""

    membership = ctx.member_repo.active_membership(member_user_id=user_id)
    return membership.role if membership is not None else "owner"
