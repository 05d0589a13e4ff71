"""Room membership: which connections have a chat thread open right now.

Persisted chat membership decides who may see a chat; this index decides who
receives thread-scoped traffic such as typing indicators. Authorization is the
caller's job, every operation here is idempotent.
"""

from __future__ import annotations

import asyncio
from typing import Dict, FrozenSet, Protocol, Set


class RoomIndex(Protocol):
	async def join(self, sid: str, chat_id: str) -> bool:
		...

	async def leave(self, sid: str, chat_id: str) -> bool:
		...

	async def members_of(self, chat_id: str) -> FrozenSet[str]:
		...

	async def rooms_of(self, sid: str) -> FrozenSet[str]:
		...

	async def drop(self, sid: str) -> FrozenSet[str]:
		...


class InMemoryRoomIndex:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._members: Dict[str, Set[str]] = {}
		self._rooms: Dict[str, Set[str]] = {}

	async def join(self, sid: str, chat_id: str) -> bool:
		"""Returns True when the connection was not already in the room."""
		async with self._lock:
			members = self._members.setdefault(chat_id, set())
			if sid in members:
				return False
			members.add(sid)
			self._rooms.setdefault(sid, set()).add(chat_id)
			return True

	async def leave(self, sid: str, chat_id: str) -> bool:
		async with self._lock:
			return self._remove(sid, chat_id)

	async def members_of(self, chat_id: str) -> FrozenSet[str]:
		async with self._lock:
			return frozenset(self._members.get(chat_id, ()))

	async def rooms_of(self, sid: str) -> FrozenSet[str]:
		async with self._lock:
			return frozenset(self._rooms.get(sid, ()))

	async def drop(self, sid: str) -> FrozenSet[str]:
		"""Remove ``sid`` from every room; returns the rooms it was in."""
		async with self._lock:
			rooms = frozenset(self._rooms.get(sid, ()))
			for chat_id in rooms:
				self._remove(sid, chat_id)
			return rooms

	def _remove(self, sid: str, chat_id: str) -> bool:
		members = self._members.get(chat_id)
		if not members or sid not in members:
			return False
		members.discard(sid)
		if not members:
			self._members.pop(chat_id, None)
		rooms = self._rooms.get(sid)
		if rooms is not None:
			rooms.discard(chat_id)
			if not rooms:
				self._rooms.pop(sid, None)
		return True
