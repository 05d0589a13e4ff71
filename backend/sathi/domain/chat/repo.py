"""Persistence for chats, chat membership and messages.

Two backends share the ``ChatRepository`` contract: an asyncpg-backed store
used in production and an in-memory store used in development and tests.
Unread counters are kept per member so that a send increments every member
except the sender.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

import asyncpg
import ulid

from sathi.infra.postgres import get_pool

from .models import Chat, Message

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS chats (
	id TEXT PRIMARY KEY,
	last_message_id TEXT,
	created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
	updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE TABLE IF NOT EXISTS chat_members (
	chat_id TEXT NOT NULL REFERENCES chats(id) ON DELETE CASCADE,
	user_id TEXT NOT NULL,
	unread_count INTEGER NOT NULL DEFAULT 0,
	PRIMARY KEY (chat_id, user_id)
);
CREATE INDEX IF NOT EXISTS idx_chat_members_user_id ON chat_members(user_id);
CREATE TABLE IF NOT EXISTS chat_messages (
	id TEXT PRIMARY KEY,
	chat_id TEXT NOT NULL REFERENCES chats(id) ON DELETE CASCADE,
	sender_id TEXT NOT NULL,
	body TEXT NOT NULL DEFAULT '',
	image_url TEXT,
	reply_to_id TEXT,
	client_msg_id TEXT,
	is_read BOOLEAN NOT NULL DEFAULT FALSE,
	created_at TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_chat_messages_chat_created ON chat_messages(chat_id, created_at, id);
"""


class ChatRepository(Protocol):
	async def create_chat(self, members: Iterable[str], *, chat_id: Optional[str] = None) -> Chat:
		...

	async def get_chat(self, chat_id: str) -> Optional[Chat]:
		...

	async def create_message(
		self,
		*,
		chat_id: str,
		sender_id: str,
		text: str,
		created_at: datetime,
		image_url: Optional[str] = None,
		reply_to_id: Optional[str] = None,
		client_msg_id: Optional[str] = None,
	) -> Message:
		...

	async def record_message(self, chat_id: str, message_id: str, sender_id: str) -> None:
		...

	async def list_messages(
		self,
		chat_id: str,
		*,
		limit: int = 50,
		before: Optional[datetime] = None,
	) -> List[Message]:
		...

	async def mark_read(self, chat_id: str, message_ids: Sequence[str]) -> List[str]:
		"""Flip unread ids in this chat to read; returns only the ids that changed."""
		...

	async def clear_unread(self, chat_id: str, user_id: str) -> None:
		...

	async def unread_count(self, chat_id: str, user_id: str) -> int:
		...


def _new_id() -> str:
	return str(ulid.new())


class InMemoryChatRepository:
	"""Process-local store for development and tests."""

	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._chats: Dict[str, Chat] = {}
		self._messages: Dict[str, List[Message]] = defaultdict(list)
		self._unread: Dict[str, Dict[str, int]] = {}

	async def create_chat(self, members: Iterable[str], *, chat_id: Optional[str] = None) -> Chat:
		member_ids = tuple(dict.fromkeys(str(member) for member in members))
		chat = Chat(
			chat_id=chat_id or _new_id(),
			members=member_ids,
			updated_at=datetime.now(timezone.utc),
		)
		async with self._lock:
			self._chats[chat.chat_id] = chat
			self._unread[chat.chat_id] = {member: 0 for member in member_ids}
		return replace(chat)

	async def get_chat(self, chat_id: str) -> Optional[Chat]:
		async with self._lock:
			chat = self._chats.get(chat_id)
			return replace(chat) if chat else None

	async def create_message(
		self,
		*,
		chat_id: str,
		sender_id: str,
		text: str,
		created_at: datetime,
		image_url: Optional[str] = None,
		reply_to_id: Optional[str] = None,
		client_msg_id: Optional[str] = None,
	) -> Message:
		message = Message(
			message_id=_new_id(),
			chat_id=chat_id,
			sender_id=str(sender_id),
			text=text,
			created_at=created_at,
			image_url=image_url,
			reply_to_id=reply_to_id,
			client_msg_id=client_msg_id,
		)
		async with self._lock:
			if chat_id not in self._chats:
				raise LookupError(f"chat {chat_id} does not exist")
			self._messages[chat_id].append(message)
		return replace(message)

	async def record_message(self, chat_id: str, message_id: str, sender_id: str) -> None:
		async with self._lock:
			chat = self._chats.get(chat_id)
			if chat is None:
				raise LookupError(f"chat {chat_id} does not exist")
			chat.last_message_id = message_id
			chat.updated_at = datetime.now(timezone.utc)
			counters = self._unread.setdefault(chat_id, {})
			for member in chat.members:
				if member != str(sender_id):
					counters[member] = counters.get(member, 0) + 1

	async def list_messages(
		self,
		chat_id: str,
		*,
		limit: int = 50,
		before: Optional[datetime] = None,
	) -> List[Message]:
		async with self._lock:
			items = list(self._messages.get(chat_id, ()))
		if before is not None:
			items = [message for message in items if message.created_at < before]
		return [replace(message) for message in items[-limit:]] if limit > 0 else []

	async def mark_read(self, chat_id: str, message_ids: Sequence[str]) -> List[str]:
		wanted = set(message_ids)
		updated: List[str] = []
		async with self._lock:
			for message in self._messages.get(chat_id, ()):
				if message.message_id in wanted and not message.read:
					message.read = True
					updated.append(message.message_id)
		return updated

	async def clear_unread(self, chat_id: str, user_id: str) -> None:
		async with self._lock:
			counters = self._unread.get(chat_id)
			if counters is not None and str(user_id) in counters:
				counters[str(user_id)] = 0

	async def unread_count(self, chat_id: str, user_id: str) -> int:
		async with self._lock:
			return self._unread.get(chat_id, {}).get(str(user_id), 0)


class PostgresChatRepository:
	"""asyncpg-backed store. Call ``ensure_schema`` once at startup."""

	def __init__(self, pool: Optional[asyncpg.pool.Pool] = None) -> None:
		self._pool = pool

	async def _get_pool(self) -> asyncpg.pool.Pool:
		if self._pool is None:
			self._pool = await get_pool()
		return self._pool

	async def ensure_schema(self) -> None:
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			await conn.execute(SCHEMA_SQL)

	async def create_chat(self, members: Iterable[str], *, chat_id: Optional[str] = None) -> Chat:
		member_ids = tuple(dict.fromkeys(str(member) for member in members))
		chat_id = chat_id or _new_id()
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				row = await conn.fetchrow(
					"INSERT INTO chats (id) VALUES ($1) RETURNING id, last_message_id, updated_at",
					chat_id,
				)
				await conn.executemany(
					"INSERT INTO chat_members (chat_id, user_id) VALUES ($1, $2) ON CONFLICT DO NOTHING",
					[(chat_id, member) for member in member_ids],
				)
		return Chat(
			chat_id=row["id"],
			members=member_ids,
			last_message_id=row["last_message_id"],
			updated_at=row["updated_at"],
		)

	async def get_chat(self, chat_id: str) -> Optional[Chat]:
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"SELECT id, last_message_id, updated_at FROM chats WHERE id = $1",
				chat_id,
			)
			if row is None:
				return None
			members = await conn.fetch(
				"SELECT user_id FROM chat_members WHERE chat_id = $1 ORDER BY user_id",
				chat_id,
			)
		return Chat(
			chat_id=row["id"],
			members=tuple(member["user_id"] for member in members),
			last_message_id=row["last_message_id"],
			updated_at=row["updated_at"],
		)

	async def create_message(
		self,
		*,
		chat_id: str,
		sender_id: str,
		text: str,
		created_at: datetime,
		image_url: Optional[str] = None,
		reply_to_id: Optional[str] = None,
		client_msg_id: Optional[str] = None,
	) -> Message:
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				INSERT INTO chat_messages (id, chat_id, sender_id, body, image_url, reply_to_id, client_msg_id, created_at)
				VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
				RETURNING *
				""",
				_new_id(),
				chat_id,
				str(sender_id),
				text,
				image_url,
				reply_to_id,
				client_msg_id,
				created_at,
			)
		return self._map_message(row)

	async def record_message(self, chat_id: str, message_id: str, sender_id: str) -> None:
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				await conn.execute(
					"UPDATE chats SET last_message_id = $2, updated_at = now() WHERE id = $1",
					chat_id,
					message_id,
				)
				await conn.execute(
					"""
					UPDATE chat_members
					SET unread_count = unread_count + 1
					WHERE chat_id = $1 AND user_id <> $2
					""",
					chat_id,
					str(sender_id),
				)

	async def list_messages(
		self,
		chat_id: str,
		*,
		limit: int = 50,
		before: Optional[datetime] = None,
	) -> List[Message]:
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT * FROM chat_messages
				WHERE chat_id = $1 AND ($2::timestamptz IS NULL OR created_at < $2)
				ORDER BY created_at DESC, id DESC
				LIMIT $3
				""",
				chat_id,
				before,
				limit,
			)
		return [self._map_message(row) for row in reversed(rows)]

	async def mark_read(self, chat_id: str, message_ids: Sequence[str]) -> List[str]:
		if not message_ids:
			return []
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				UPDATE chat_messages SET is_read = TRUE
				WHERE chat_id = $1 AND id = ANY($2::text[]) AND is_read = FALSE
				RETURNING id
				""",
				chat_id,
				list(message_ids),
			)
		return [row["id"] for row in rows]

	async def clear_unread(self, chat_id: str, user_id: str) -> None:
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			await conn.execute(
				"UPDATE chat_members SET unread_count = 0 WHERE chat_id = $1 AND user_id = $2",
				chat_id,
				str(user_id),
			)

	async def unread_count(self, chat_id: str, user_id: str) -> int:
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			value = await conn.fetchval(
				"SELECT unread_count FROM chat_members WHERE chat_id = $1 AND user_id = $2",
				chat_id,
				str(user_id),
			)
		return int(value or 0)

	@staticmethod
	def _map_message(row: asyncpg.Record) -> Message:
		return Message(
			message_id=row["id"],
			chat_id=row["chat_id"],
			sender_id=row["sender_id"],
			text=row["body"],
			created_at=row["created_at"],
			image_url=row["image_url"],
			reply_to_id=row["reply_to_id"],
			client_msg_id=row["client_msg_id"],
			read=bool(row["is_read"]),
		)
