"""Authentication routes."""

from __future__ import annotations

from flask import current_app, g, request

from ...errors import Unauthorized, ValidationError
from ...infra.integrations.turnstile import verify_turnstile_token
from ...services import auth as auth_service
from ...services import bank_sync
from ...services import billing as billing_service
from ...services import members as member_service
from ..common import app_ctx, json_body, login_required, ok
from . import bp
from .forms import SignInForm, SignUpForm


def _check_captcha(token: str) -> None:
    config = app_ctx().config
    if not verify_turnstile_token(
        token, secret_key=config.TURNSTILE_SECRET_KEY, remote_ip=request.remote_addr
    ):
        raise ValidationError("Captcha verification failed", {"captcha_token": ["Please retry the captcha."]})


def _user_payload(user) -> dict:
    ctx = app_ctx()
    data = user.model_dump(mode="json", exclude={"password_hash"})
    data["is_admin"] = user.is_admin
    data["owner_id"] = member_service.resolve_owner_id(ctx, user.id)
    data["household_role"] = member_service.membership_role(ctx, user.id)
    return data


def _session_payload(user) -> dict:
    token = auth_service.issue_token(user, secret_key=app_ctx().config.SECRET_KEY)
    return {"token": token, "user": _user_payload(user)}


@bp.post("/signup")
def signup():
    form = SignUpForm.from_mapping(json_body())
    if not form.validate():
        raise ValidationError("Invalid sign-up details", form.errors)
    _check_captcha(form.captcha_token)
    user = auth_service.create_user(
        email=form.email,
        password=form.password,
        name=form.name,
        session_factory=app_ctx().session_factory,
    )
    current_app.logger.info("User signed up", extra={"user_id": user.id})
    return ok(_session_payload(user), 201)


@bp.post("/signin")
def signin():
    form = SignInForm.from_mapping(json_body())
    if not form.validate():
        raise ValidationError("Invalid sign-in details", form.errors)
    _check_captcha(form.captcha_token)
    user = auth_service.authenticate(
        email=form.email, password=form.password, session_factory=app_ctx().session_factory
    )
    if user is None:
        current_app.logger.info("Failed sign-in attempt")
        raise Unauthorized("Invalid email or password")
    return ok(_session_payload(user))


@bp.get("/me")
@login_required
def me():
    data = _user_payload(g.current_user)
    data["billing"] = billing_service.subscription_status(app_ctx(), user_id=g.owner_id)
    return ok(data)


@bp.patch("/me")
@login_required
def update_me():
    user = auth_service.update_profile(
        user_id=g.current_user.id, data=json_body(), session_factory=app_ctx().session_factory
    )
    return ok(_user_payload(user))


@bp.post("/change-password")
@login_required
def change_password():
    data = json_body()
    auth_service.change_password(
        user_id=g.current_user.id,
        current_password=str(data.get("current_password") or ""),
        new_password=str(data.get("new_password") or ""),
        session_factory=app_ctx().session_factory,
    )
    return ok()


@bp.delete("/account")
@login_required
def delete_account():
    ctx = app_ctx()
    user = g.current_user
    if ctx.bank_gateway is not None:
        bank_sync.disconnect_all(ctx, user_id=user.id)
    auth_service.delete_user(user_id=user.id, session_factory=ctx.session_factory)
    current_app.logger.info("Account deleted", extra={"user_id": user.id})
    return ok()
