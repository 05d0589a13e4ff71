"""Centralised JWT helpers for access tokens.

Uses HS256 with the application's secret key. Tokens are issued by the
identity service; this backend only verifies them (``encode_access`` exists for
tests and local tooling).
"""

from __future__ import annotations

import time
from typing import Any, Dict

import jwt
from jwt import InvalidTokenError

from sathi.settings import settings

USER_ID_CLAIMS = ("sub", "userId", "id")


def encode_access(payload: dict[str, object], *, ttl_seconds: int = 3600) -> str:
    """Encode an access token, defaulting ``iat``/``exp`` when absent."""
    now = int(time.time())
    body: Dict[str, Any] = {"iat": now, "exp": now + ttl_seconds}
    body.update(payload)
    return jwt.encode(body, settings.secret_key, algorithm="HS256")


def decode_access(token: str) -> dict[str, object]:
    """Decode and validate an access token.

    Raises jwt.InvalidTokenError subclasses on failure.
    """
    payload = jwt.decode(
        token,
        settings.secret_key,
        algorithms=["HS256"],
        leeway=settings.jwt_leeway_seconds,
        options={"require": ["exp"]},
    )
    if not any(payload.get(claim) for claim in USER_ID_CLAIMS):
        raise InvalidTokenError("missing_claim:sub")
    return payload  # type: ignore[return-value]
