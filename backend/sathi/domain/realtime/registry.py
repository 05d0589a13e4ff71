"""Session registry: live connections and the identities that own them.

A user is online iff at least one authenticated connection maps to them. The
registry owns the connection table; room membership is delegated to the room
index so that ``unregister`` can drop a connection from every room in one step.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Optional, Protocol, Set

from sathi.domain.common.errors import IdentityLocked, Unauthenticated
from sathi.domain.realtime.rooms import RoomIndex
from sathi.infra.auth import AuthenticatedUser, TokenVerifier
from sathi.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Connection:
	sid: str
	user: Optional[AuthenticatedUser] = None
	connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

	@property
	def authenticated(self) -> bool:
		return self.user is not None

	@property
	def user_id(self) -> Optional[str]:
		return self.user.id if self.user else None

	@classmethod
	def detached(cls, user: AuthenticatedUser) -> "Connection":
		"""A connection-shaped handle for callers that act outside any socket (REST)."""
		return cls(sid=f"rest:{uuid.uuid4().hex}", user=user)


class SessionRegistry(Protocol):
	async def add(self, sid: str) -> Connection:
		...

	async def register(self, sid: str, token: Optional[str]) -> Optional[AuthenticatedUser]:
		...

	async def get(self, sid: str) -> Optional[Connection]:
		...

	async def connections_for(self, user_id: str) -> FrozenSet[str]:
		...

	async def unregister(self, sid: str) -> Optional[Connection]:
		...

	async def is_online(self, user_id: str) -> bool:
		...


class InMemorySessionRegistry:
	"""Per-process connection table."""

	def __init__(self, verifier: TokenVerifier, rooms: RoomIndex) -> None:
		self._verifier = verifier
		self._rooms = rooms
		self._lock = asyncio.Lock()
		self._connections: Dict[str, Connection] = {}
		self._by_user: Dict[str, Set[str]] = {}

	async def add(self, sid: str) -> Connection:
		async with self._lock:
			conn = self._connections.get(sid)
			if conn is None:
				conn = Connection(sid=sid)
				self._connections[sid] = conn
			return conn

	async def register(self, sid: str, token: Optional[str]) -> Optional[AuthenticatedUser]:
		"""Bind ``sid`` to the identity behind ``token``.

		Returns the user on success and ``None`` when the token is missing or
		invalid, or when ``sid`` is no longer connected; a live connection then
		stays anonymous. Raises ``IdentityLocked`` when the connection already
		belongs to a different user.
		"""
		try:
			user = self._verifier.verify(token or "")
		except Unauthenticated as exc:
			obs_metrics.socket_auth(exc.reason)
			logger.info("socket auth rejected", extra={"sid": sid, "reason": exc.reason})
			conn = await self.get(sid)
			return conn.user if conn else None
		async with self._lock:
			conn = self._connections.get(sid)
			if conn is None:
				# Only on_connect creates entries; a late event must not revive a closed sid.
				obs_metrics.socket_auth("disconnected")
				return None
			if conn.user is not None:
				if conn.user.id != user.id:
					obs_metrics.socket_auth("identity_locked")
					logger.warning(
						"socket identity change refused",
						extra={"sid": sid, "user_id": conn.user.id},
					)
					raise IdentityLocked()
				return conn.user
			conn.user = user
			self._by_user.setdefault(user.id, set()).add(sid)
			obs_metrics.set_online_users(len(self._by_user))
		obs_metrics.socket_auth("ok")
		return user

	async def get(self, sid: str) -> Optional[Connection]:
		async with self._lock:
			return self._connections.get(sid)

	async def connections_for(self, user_id: str) -> FrozenSet[str]:
		async with self._lock:
			return frozenset(self._by_user.get(str(user_id), ()))

	async def unregister(self, sid: str) -> Optional[Connection]:
		async with self._lock:
			conn = self._connections.pop(sid, None)
			if conn is not None and conn.user is not None:
				sids = self._by_user.get(conn.user.id)
				if sids is not None:
					sids.discard(sid)
					if not sids:
						self._by_user.pop(conn.user.id, None)
				obs_metrics.set_online_users(len(self._by_user))
		await self._rooms.drop(sid)
		return conn

	async def is_online(self, user_id: str) -> bool:
		return bool(await self.connections_for(user_id))

	async def online_count(self) -> int:
		async with self._lock:
			return len(self._by_user)
