"""Identity interface for sockets and REST endpoints.

Token issuance lives in the identity service. Here we only turn a bearer token
into an ``AuthenticatedUser``; both the socket registry and the FastAPI
dependency go through a ``TokenVerifier``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from fastapi import Header, HTTPException, Query, Request, status

from sathi.domain.common.errors import Unauthenticated
from sathi.infra import jwt as jwt_helper


@dataclass(frozen=True, slots=True)
class AuthenticatedUser:
	id: str
	name: str = "User"


class TokenVerifier(Protocol):
	def verify(self, token: str) -> AuthenticatedUser:
		...


class JwtTokenVerifier:
	"""Verify HS256 access tokens issued by the identity service."""

	def verify(self, token: str) -> AuthenticatedUser:
		token = (token or "").strip()
		if not token:
			raise Unauthenticated("missing_token")
		try:
			payload = jwt_helper.decode_access(token)
		except Exception:
			# Normalise all decode failures to a single reason
			raise Unauthenticated("invalid_token") from None
		user_id = next(
			(str(payload[claim]).strip() for claim in jwt_helper.USER_ID_CLAIMS if payload.get(claim)),
			"",
		)
		if not user_id:
			raise Unauthenticated("invalid_token")
		name = payload.get("name") or payload.get("email") or "User"
		return AuthenticatedUser(id=user_id, name=str(name))


_default_verifier = JwtTokenVerifier()


def extract_token(authorization: Optional[str]) -> Optional[str]:
	"""Accept both ``Bearer <token>`` and a bare token in the Authorization header."""
	if not authorization:
		return None
	value = authorization.strip()
	if value.lower().startswith("bearer "):
		return value.split(" ", 1)[1].strip() or None
	return value or None


def _verifier_for(request: Request) -> TokenVerifier:
	"""The verifier the socket registry uses, so both surfaces accept the same tokens."""
	hub = getattr(request.app.state, "realtime", None)
	return getattr(hub, "verifier", None) or _default_verifier


async def get_current_user(
	request: Request,
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
	token: Optional[str] = Query(default=None),
) -> AuthenticatedUser:
	raw = extract_token(authorization) or token
	if not raw:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing_token")
	try:
		return _verifier_for(request).verify(raw)
	except Unauthenticated as exc:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=exc.reason) from None
