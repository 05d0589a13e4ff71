"""Ephemeral typing indicators scoped to the connections that have a thread open.

Nothing here is persisted and nothing expires server-side: a client that
vanishes mid-typing leaves peers with an indicator until their own timeout
clears it.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from sathi.domain.common.errors import RateLimited, Unauthenticated
from sathi.domain.realtime.events import UserStoppedTyping, UserTyping
from sathi.domain.realtime.registry import Connection
from sathi.domain.realtime.rooms import RoomIndex
from sathi.domain.realtime.transport import Broadcaster
from sathi.infra import rate_limit
from sathi.obs import metrics as obs_metrics
from sathi.settings import settings

logger = logging.getLogger(__name__)

Limiter = Callable[..., Awaitable[bool]]


class TypingBroadcaster:
	def __init__(self, rooms: RoomIndex, broadcaster: Broadcaster, *, limiter: Limiter = rate_limit.allow) -> None:
		self._rooms = rooms
		self._broadcaster = broadcaster
		self._limiter = limiter

	async def start_typing(self, connection: Connection, chat_id: str) -> int:
		user = _require_user(connection)
		allowed = await self._limiter("typing", user.id, limit=settings.typing_rate_limit_per_minute)
		if not allowed:
			obs_metrics.rate_limited("typing")
			raise RateLimited()
		event = UserTyping(chat_id=chat_id, user_id=user.id, user_name=user.name)
		return await self._fanout(connection, chat_id, event)

	async def stop_typing(self, connection: Connection, chat_id: str) -> int:
		# Stops are never limited so a throttled client can still clear its indicator.
		user = _require_user(connection)
		event = UserStoppedTyping(chat_id=chat_id, user_id=user.id, user_name=user.name)
		return await self._fanout(connection, chat_id, event)

	async def _fanout(self, connection: Connection, chat_id: str, event: UserTyping | UserStoppedTyping) -> int:
		members = await self._rooms.members_of(chat_id)
		return await self._broadcaster.deliver(members, event, exclude=(connection.sid,))


def _require_user(connection: Connection):
	if connection.user is None:
		raise Unauthenticated()
	return connection.user
