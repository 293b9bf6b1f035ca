"""Sign-up and sign-in form validation."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ...services.auth import MIN_PASSWORD_LENGTH


@dataclass(slots=True)
class SignUpForm:
    email: str = ""
    password: str = ""
    name: str = ""
    captcha_token: str = ""
    errors: dict[str, list[str]] = field(default_factory=dict, init=False)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> SignUpForm:
        return cls(
            email=str(data.get("email") or "").strip(),
            password=str(data.get("password") or ""),
            name=str(data.get("name") or "").strip(),
            captcha_token=str(data.get("captcha_token") or ""),
        )

    def validate(self) -> bool:
        self.errors.clear()
        if not self.email:
            self._add_error("email", "Email is required.")
        if len(self.password) < MIN_PASSWORD_LENGTH:
            self._add_error("password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
        if len(self.name) > 128:
            self._add_error("name", "Name must be 128 characters or fewer.")
        return not self.errors

    def _add_error(self, field: str, message: str) -> None:
        self.errors.setdefault(field, []).append(message)


@dataclass(slots=True)
class SignInForm:
    email: str = ""
    password: str = ""
    captcha_token: str = ""
    errors: dict[str, list[str]] = field(default_factory=dict, init=False)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> SignInForm:
        return cls(
            email=str(data.get("email") or "").strip(),
            password=str(data.get("password") or ""),
            captcha_token=str(data.get("captcha_token") or ""),
        )

    def validate(self) -> bool:
        self.errors.clear()
        if not self.email:
            self.errors.setdefault("email", []).append("Email is required.")
        if not self.password:
            self.errors.setdefault("password", []).append("Password is required.")
        return not self.errors
