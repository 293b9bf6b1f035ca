"""Authentication and user management services."""

from __future__ import annotations

import logging
import re
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlmodel import select

from ..errors import Conflict, NotFound, Unauthorized, ValidationError
from ..infra.database import SessionFactory
from ..infra.repositories.base import LIKE_ESCAPE, contains_pattern
from ..models import (
    Account,
    Budget,
    Debt,
    Goal,
    Household,
    HouseholdMember,
    ImportJob,
    InvestmentTransaction,
    PlaidItem,
    PlannedPayment,
    ServiceSubscription,
    Subscription,
    Transaction,
    TransactionSync,
    User,
)
from ..models.user import ROLES
from ..timeutils import utcnow

logger = logging.getLogger(__name__)

_hasher = PasswordHasher()
_TOKEN_SALT = "spare-auth"
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 8


def _normalize_role(role: str) -> str:
    role = (role or "user").lower()
    if role not in ROLES:
        raise ValidationError(f"Invalid role: {role}")
    return role


def normalize_email(email: str) -> str:
    value = (email or "").strip().lower()
    if not _EMAIL_RE.match(value):
        raise ValidationError("Enter a valid email address.", {"email": ["Invalid email address."]})
    return value


def _check_password(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters.",
            {"password": [f"Password must be at least {MIN_PASSWORD_LENGTH} characters."]},
        )


def get_user(user_id: int, session_factory: SessionFactory) -> Optional[User]:
    with session_factory() as session:
        user = session.get(User, user_id)
        if user:
            session.expunge(user)
        return user


def get_user_by_email(email: str, session_factory: SessionFactory) -> Optional[User]:
    """Fetch a user by email (case-insensitive)."""
    with session_factory() as session:
        user = session.exec(select(User).where(User.email == email.strip().lower())).first()
        if user:
            session.expunge(user)
        return user


def list_users(session_factory: SessionFactory, *, search: str | None = None) -> list[User]:
    """Return all users ordered by creation time."""
    with session_factory() as session:
        statement = select(User)
        if search:
            pattern = contains_pattern(search.strip())
            statement = statement.where(
                User.email.ilike(pattern, escape=LIKE_ESCAPE)  # type: ignore[attr-defined]
                | User.name.ilike(pattern, escape=LIKE_ESCAPE)  # type: ignore[union-attr]
            )
        users = list(session.exec(statement.order_by(User.created_at)).all())
        session.expunge_all()
    return users


def create_user(
    *,
    email: str,
    password: str,
    name: str = "",
    role: str = "user",
    session_factory: SessionFactory,
) -> User:
    """Create a new user with hashed password."""

    normalized_role = _normalize_role(role)
    email = normalize_email(email)
    _check_password(password)
    password_hash = _hasher.hash(password)
    with session_factory() as session:
        existing = session.exec(select(User).where(User.email == email)).first()
        if existing:
            raise Conflict("An account with this email already exists")
        user = User(email=email, name=name.strip(), password_hash=password_hash, role=normalized_role)
        session.add(user)
        session.commit()
        session.refresh(user)
        session.expunge(user)
    logger.info("User created", extra={"user_id": user.id})
    return user


def authenticate(
    *,
    email: str,
    password: str,
    session_factory: SessionFactory,
) -> Optional[User]:
    """Validate credentials and return the user when correct."""

    email = (email or "").strip().lower()
    if not email or not password:
        return None
    with session_factory() as session:
        user = session.exec(select(User).where(User.email == email)).first()
        if user is None:
            return None
        try:
            _hasher.verify(user.password_hash, password)
        except (VerifyMismatchError, InvalidHash, VerificationError):
            return None

        if _hasher.check_needs_rehash(user.password_hash):
            user.password_hash = _hasher.hash(password)
        user.last_login = utcnow()
        session.add(user)
        session.commit()
        session.refresh(user)
        session.expunge(user)
        return user


def issue_token(user: User, *, secret_key: str) -> str:
    """Signed bearer token carrying the user id."""

    serializer = URLSafeTimedSerializer(secret_key, salt=_TOKEN_SALT)
    return serializer.dumps({"uid": user.id})


def load_user_from_token(
    token: str,
    *,
    secret_key: str,
    max_age: int,
    session_factory: SessionFactory,
) -> User:
    """Resolve a bearer token to its user or raise :class:`Unauthorized`."""

    serializer = URLSafeTimedSerializer(secret_key, salt=_TOKEN_SALT)
    try:
        data = serializer.loads(token, max_age=max_age)
    except SignatureExpired as exc:
        raise Unauthorized("Session expired") from exc
    except BadSignature as exc:
        raise Unauthorized("Invalid token") from exc
    user = get_user(int(data.get("uid", 0)), session_factory)
    if user is None:
        raise Unauthorized("Invalid token")
    return user


def set_role(*, user_id: int, role: str, session_factory: SessionFactory) -> User:
    """Update the role for a user."""

    normalized_role = _normalize_role(role)
    with session_factory() as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFound("User not found")
        user.role = normalized_role
        session.add(user)
        session.commit()
        session.refresh(user)
        session.expunge(user)
        return user


def update_profile(*, user_id: int, data: dict, session_factory: SessionFactory) -> User:
    """Update editable profile fields (name, country, region, expected income)."""

    with session_factory() as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFound("User not found")
        if "name" in data:
            user.name = str(data["name"] or "").strip()[:128]
        if "country" in data:
            country = str(data["country"] or "").strip().upper()
            if country not in {"US", "CA"}:
                raise ValidationError("Country must be US or CA.", {"country": ["Unsupported country."]})
            user.country = country
        if "region" in data:
            region = str(data["region"] or "").strip().upper()
            user.region = region or None
        if "expected_income" in data:
            raw = data["expected_income"]
            if raw in (None, ""):
                user.expected_income = None
            else:
                try:
                    income = float(raw)
                except (TypeError, ValueError) as exc:
                    raise ValidationError(
                        "Expected income must be a number.",
                        {"expected_income": ["Enter a valid number."]},
                    ) from exc
                if income < 0:
                    raise ValidationError(
                        "Expected income cannot be negative.",
                        {"expected_income": ["Must be zero or more."]},
                    )
                user.expected_income = income
        session.add(user)
        session.commit()
        session.refresh(user)
        session.expunge(user)
        return user


def change_password(
    *, user_id: int, current_password: str, new_password: str, session_factory: SessionFactory
) -> User:
    with session_factory() as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFound("User not found")
        try:
            _hasher.verify(user.password_hash, current_password or "")
        except (VerifyMismatchError, InvalidHash, VerificationError) as exc:
            raise ValidationError(
                "Current password is incorrect.", {"current_password": ["Incorrect password."]}
            ) from exc
    return reset_password(user_id=user_id, password=new_password, session_factory=session_factory)


def reset_password(*, user_id: int, password: str, session_factory: SessionFactory) -> User:
    """Reset a user's password to the provided value."""

    _check_password(password)
    password_hash = _hasher.hash(password)
    with session_factory() as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFound("User not found")
        user.password_hash = password_hash
        session.add(user)
        session.commit()
        session.refresh(user)
        session.expunge(user)
        return user


# Child tables first so foreign keys never dangle mid-delete.
_OWNED_MODELS = (
    PlannedPayment,
    InvestmentTransaction,
    ImportJob,
    Budget,
    Goal,
    Debt,
    ServiceSubscription,
    Transaction,
    Account,
    PlaidItem,
    Subscription,
)


def delete_user(*, user_id: int, session_factory: SessionFactory) -> None:
    """Delete a user together with every row they own."""

    from ..infra.repositories.category import SQLModelCategoryRepository

    with session_factory() as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFound("User not found")
        account_ids = [
            account_id
            for account_id in session.exec(select(Account.id).where(Account.user_id == user_id)).all()
        ]
        if account_ids:
            for sync in session.exec(
                select(TransactionSync).where(TransactionSync.account_id.in_(account_ids))  # type: ignore[attr-defined]
            ).all():
                session.delete(sync)
        for member in session.exec(
            select(HouseholdMember).where(
                (HouseholdMember.owner_id == user_id) | (HouseholdMember.member_user_id == user_id)
            )
        ).all():
            session.delete(member)
        session.flush()
        for model in _OWNED_MODELS:
            for row in session.exec(select(model).where(model.user_id == user_id)).all():
                session.delete(row)
            session.flush()
        for household in session.exec(select(Household).where(Household.owner_id == user_id)).all():
            session.delete(household)
        session.commit()

    SQLModelCategoryRepository(session_factory).delete_owned(user_id=user_id)

    with session_factory() as session:
        user = session.get(User, user_id)
        if user is not None:
            session.delete(user)
        session.commit()
    logger.info("User deleted", extra={"user_id": user_id})
