"""Persistence for user notifications."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

import asyncpg
import ulid

from sathi.infra.postgres import get_pool

from .models import Notification, NotificationCategory, NotificationPriority, NotificationType

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS notifications (
	id TEXT PRIMARY KEY,
	recipient_id TEXT NOT NULL,
	sender_id TEXT,
	type TEXT NOT NULL,
	title TEXT NOT NULL,
	body TEXT NOT NULL,
	payload JSONB NOT NULL DEFAULT '{}'::jsonb,
	priority TEXT NOT NULL DEFAULT 'medium',
	read_at TIMESTAMPTZ,
	created_at TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_notifications_recipient_created ON notifications(recipient_id, created_at DESC);
"""


@dataclass(slots=True)
class NewNotification:
	recipient_id: str
	type: NotificationType
	title: str
	body: str
	sender_id: Optional[str] = None
	payload: Optional[Dict[str, Any]] = None
	priority: NotificationPriority = NotificationPriority.MEDIUM


class NotificationRepository(Protocol):
	async def create(self, item: NewNotification) -> Notification:
		...

	async def create_many(self, items: Sequence[NewNotification]) -> List[Notification]:
		...

	async def list_for_user(
		self,
		user_id: str,
		*,
		limit: int = 50,
		offset: int = 0,
		is_read: Optional[bool] = None,
		category: Optional[NotificationCategory] = None,
		priority: Optional[NotificationPriority] = None,
	) -> List[Notification]:
		"""Newest first; each filter left as ``None`` matches everything."""
		...

	async def mark_read(self, user_id: str, notification_ids: Iterable[str]) -> int:
		...

	async def mark_all_read(self, user_id: str, *, category: Optional[NotificationCategory] = None) -> int:
		...

	async def unread_count(self, user_id: str, *, category: Optional[NotificationCategory] = None) -> int:
		...

	async def unread_by_category(self, user_id: str) -> Dict[NotificationCategory, int]:
		...

	async def delete(self, user_id: str, notification_id: str) -> bool:
		"""Remove one of the user's notifications; ``False`` when there was none."""
		...


def _build(item: NewNotification, now: datetime) -> Notification:
	return Notification(
		notification_id=str(ulid.new()),
		recipient_id=str(item.recipient_id),
		type=NotificationType(item.type),
		title=item.title,
		body=item.body,
		created_at=now,
		sender_id=str(item.sender_id) if item.sender_id else None,
		payload=dict(item.payload or {}),
		priority=NotificationPriority(item.priority),
	)


class InMemoryNotificationRepository:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._items: Dict[str, Notification] = {}

	async def create(self, item: NewNotification) -> Notification:
		created = await self.create_many([item])
		return created[0]

	async def create_many(self, items: Sequence[NewNotification]) -> List[Notification]:
		now = datetime.now(timezone.utc)
		built = [_build(item, now) for item in items]
		async with self._lock:
			for notification in built:
				self._items[notification.notification_id] = notification
		return [replace(notification) for notification in built]

	async def list_for_user(
		self,
		user_id: str,
		*,
		limit: int = 50,
		offset: int = 0,
		is_read: Optional[bool] = None,
		category: Optional[NotificationCategory] = None,
		priority: Optional[NotificationPriority] = None,
	) -> List[Notification]:
		async with self._lock:
			items = [
				replace(n)
				for n in self._items.values()
				if n.recipient_id == str(user_id)
				and (is_read is None or n.is_read == is_read)
				and (category is None or n.category is category)
				and (priority is None or n.priority is priority)
			]
		items.sort(key=lambda n: (n.created_at, n.notification_id), reverse=True)
		return items[offset : offset + limit]

	async def mark_read(self, user_id: str, notification_ids: Iterable[str]) -> int:
		now = datetime.now(timezone.utc)
		updated = 0
		async with self._lock:
			for notification_id in set(notification_ids):
				notification = self._items.get(notification_id)
				if notification is None or notification.recipient_id != str(user_id) or notification.is_read:
					continue
				notification.read_at = now
				updated += 1
		return updated

	async def mark_all_read(self, user_id: str, *, category: Optional[NotificationCategory] = None) -> int:
		async with self._lock:
			ids = [
				n.notification_id
				for n in self._items.values()
				if n.recipient_id == str(user_id) and (category is None or n.category is category)
			]
		return await self.mark_read(user_id, ids)

	async def unread_count(self, user_id: str, *, category: Optional[NotificationCategory] = None) -> int:
		async with self._lock:
			return sum(
				1
				for n in self._items.values()
				if n.recipient_id == str(user_id) and not n.is_read and (category is None or n.category is category)
			)

	async def unread_by_category(self, user_id: str) -> Dict[NotificationCategory, int]:
		counts = {category: 0 for category in NotificationCategory}
		async with self._lock:
			for n in self._items.values():
				if n.recipient_id == str(user_id) and not n.is_read:
					counts[n.category] += 1
		return counts

	async def delete(self, user_id: str, notification_id: str) -> bool:
		async with self._lock:
			notification = self._items.get(notification_id)
			if notification is None or notification.recipient_id != str(user_id):
				return False
			del self._items[notification_id]
			return True


class PostgresNotificationRepository:
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

	async def create(self, item: NewNotification) -> Notification:
		created = await self.create_many([item])
		return created[0]

	async def create_many(self, items: Sequence[NewNotification]) -> List[Notification]:
		if not items:
			return []
		now = datetime.now(timezone.utc)
		built = [_build(item, now) for item in items]
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			await conn.executemany(
				"""
				INSERT INTO notifications (id, recipient_id, sender_id, type, title, body, payload, priority, created_at)
				VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb, $8, $9)
				""",
				[
					(
						n.notification_id,
						n.recipient_id,
						n.sender_id,
						n.type.value,
						n.title,
						n.body,
						json.dumps(n.payload, default=str),
						n.priority.value,
						n.created_at,
					)
					for n in built
				],
			)
		return built

	async def list_for_user(
		self,
		user_id: str,
		*,
		limit: int = 50,
		offset: int = 0,
		is_read: Optional[bool] = None,
		category: Optional[NotificationCategory] = None,
		priority: Optional[NotificationPriority] = None,
	) -> List[Notification]:
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT * FROM notifications
				WHERE recipient_id = $1
					AND ($2::boolean IS NULL OR (read_at IS NOT NULL) = $2)
					AND ($3::text[] IS NULL OR type = ANY($3::text[]))
					AND ($4::text IS NULL OR priority = $4)
				ORDER BY created_at DESC, id DESC
				LIMIT $5 OFFSET $6
				""",
				str(user_id),
				is_read,
				_type_values(category),
				priority.value if priority else None,
				limit,
				offset,
			)
		return [self._map_row(row) for row in rows]

	async def mark_read(self, user_id: str, notification_ids: Iterable[str]) -> int:
		ids = list(dict.fromkeys(notification_ids))
		if not ids:
			return 0
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				UPDATE notifications SET read_at = now()
				WHERE recipient_id = $1 AND id = ANY($2::text[]) AND read_at IS NULL
				RETURNING id
				""",
				str(user_id),
				ids,
			)
		return len(rows)

	async def mark_all_read(self, user_id: str, *, category: Optional[NotificationCategory] = None) -> int:
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				UPDATE notifications SET read_at = now()
				WHERE recipient_id = $1 AND read_at IS NULL AND ($2::text[] IS NULL OR type = ANY($2::text[]))
				RETURNING id
				""",
				str(user_id),
				_type_values(category),
			)
		return len(rows)

	async def unread_count(self, user_id: str, *, category: Optional[NotificationCategory] = None) -> int:
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			value = await conn.fetchval(
				"""
				SELECT COUNT(*) FROM notifications
				WHERE recipient_id = $1 AND read_at IS NULL AND ($2::text[] IS NULL OR type = ANY($2::text[]))
				""",
				str(user_id),
				_type_values(category),
			)
		return int(value or 0)

	async def unread_by_category(self, user_id: str) -> Dict[NotificationCategory, int]:
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT type, COUNT(*) AS unread FROM notifications
				WHERE recipient_id = $1 AND read_at IS NULL
				GROUP BY type
				""",
				str(user_id),
			)
		counts = {category: 0 for category in NotificationCategory}
		for row in rows:
			counts[NotificationType(row["type"]).category] += int(row["unread"])
		return counts

	async def delete(self, user_id: str, notification_id: str) -> bool:
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			deleted = await conn.fetchval(
				"DELETE FROM notifications WHERE id = $1 AND recipient_id = $2 RETURNING id",
				notification_id,
				str(user_id),
			)
		return deleted is not None

	@staticmethod
	def _map_row(row: asyncpg.Record) -> Notification:
		payload = row["payload"]
		if isinstance(payload, str):
			payload = json.loads(payload)
		return Notification(
			notification_id=row["id"],
			recipient_id=row["recipient_id"],
			type=NotificationType(row["type"]),
			title=row["title"],
			body=row["body"],
			created_at=row["created_at"],
			sender_id=row["sender_id"],
			payload=payload or {},
			priority=NotificationPriority(row["priority"]),
			read_at=row["read_at"],
		)


def _type_values(category: Optional[NotificationCategory]) -> Optional[List[str]]:
	# No category column; a category is the set of types it covers.
	if category is None:
		return None
	return [kind.value for kind in category.types]
