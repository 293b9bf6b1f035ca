"""Cloudflare Turnstile CAPTCHA verification."""

from __future__ import annotations

from typing import Any

import httpx

from ...errors import ExternalServiceError
from ...logging_config import get_logger

logger = get_logger(__name__)

VERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"


def verify_turnstile_token(
    token: str | None,
    *,
    secret_key: str,
    remote_ip: str | None = None,
    timeout: float = 10.0,
) -> bool:
    """Return True when the widget token is valid.

    Verification is disabled (always True) when no secret key is configured.
    """
    if not secret_key:
        return True
    if not token:
        return False

    payload: dict[str, Any] = {"secret": secret_key, "response": token}
    if remote_ip:
        payload["remoteip"] = remote_ip
    try:
        resp = httpx.post(VERIFY_URL, data=payload, timeout=timeout)
        data = resp.json() if resp.content else {}
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("Turnstile verification request failed: %s", exc)
        raise ExternalServiceError("Captcha verification is unavailable") from exc

    if not isinstance(data, dict):
        return False
    if not data.get("success"):
        logger.info("Turnstile rejected token", extra={"error_codes": data.get("error-codes")})
        return False
    return True
