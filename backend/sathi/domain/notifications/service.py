"""Notification producer API: persist first, then attempt live delivery."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from sathi.domain.common.errors import NotificationNotFound
from sathi.domain.common.gateway import gateway_errors
from sathi.domain.notifications.models import Notification, NotificationCategory, NotificationPriority, NotificationType
from sathi.domain.notifications.repo import NewNotification, NotificationRepository
from sathi.domain.realtime.fanout import NotificationFanout

logger = logging.getLogger(__name__)


class NotificationService:
	def __init__(self, repo: NotificationRepository, fanout: NotificationFanout) -> None:
		self._repo = repo
		self._fanout = fanout

	async def notify(
		self,
		recipient_id: str,
		type: NotificationType | str,
		title: str,
		body: str,
		*,
		sender_id: Optional[str] = None,
		payload: Optional[Dict[str, Any]] = None,
		priority: NotificationPriority | str | None = None,
	) -> Notification:
		item = _new_item(recipient_id, type, title, body, sender_id, payload, priority)
		notification = await self._repo.create(item)
		await self._fanout.deliver(notification)
		return notification

	async def notify_many(
		self,
		recipient_ids: Iterable[str],
		type: NotificationType | str,
		title: str,
		body: str,
		*,
		sender_id: Optional[str] = None,
		payload: Optional[Dict[str, Any]] = None,
		priority: NotificationPriority | str | None = None,
	) -> List[Notification]:
		"""Notify every recipient except the sender, persisting in one batch."""
		recipients = [
			str(recipient)
			for recipient in dict.fromkeys(recipient_ids)
			if recipient and str(recipient) != str(sender_id)
		]
		if not recipients:
			return []
		items = [_new_item(rid, type, title, body, sender_id, payload, priority) for rid in recipients]
		created = await self._repo.create_many(items)
		for notification in created:
			await self._fanout.deliver(notification)
		logger.info(
			"notifications created",
			extra={"kind": str(NotificationType(type).value), "count": len(created)},
		)
		return created

	async def list_for_user(
		self,
		user_id: str,
		*,
		limit: int = 50,
		offset: int = 0,
		is_read: Optional[bool] = None,
		category: NotificationCategory | str | None = None,
		priority: NotificationPriority | str | None = None,
	) -> List[Notification]:
		with gateway_errors("notifications.list", user_id=user_id):
			return await self._repo.list_for_user(
				user_id,
				limit=limit,
				offset=offset,
				is_read=is_read,
				category=NotificationCategory(category) if category else None,
				priority=NotificationPriority(priority) if priority else None,
			)

	async def mark_read(self, user_id: str, notification_ids: Iterable[str]) -> int:
		with gateway_errors("notifications.mark_read", user_id=user_id):
			return await self._repo.mark_read(user_id, notification_ids)

	async def mark_all_read(self, user_id: str, *, category: NotificationCategory | str | None = None) -> int:
		with gateway_errors("notifications.mark_all_read", user_id=user_id):
			return await self._repo.mark_all_read(
				user_id, category=NotificationCategory(category) if category else None
			)

	async def unread_count(self, user_id: str, *, category: NotificationCategory | str | None = None) -> int:
		with gateway_errors("notifications.unread_count", user_id=user_id):
			return await self._repo.unread_count(
				user_id, category=NotificationCategory(category) if category else None
			)

	async def unread_by_category(self, user_id: str) -> Dict[NotificationCategory, int]:
		with gateway_errors("notifications.unread_by_category", user_id=user_id):
			return await self._repo.unread_by_category(user_id)

	async def delete(self, user_id: str, notification_id: str) -> None:
		"""Raises ``NotificationNotFound`` unless the user owned the notification."""
		with gateway_errors("notifications.delete", user_id=user_id):
			deleted = await self._repo.delete(user_id, notification_id)
		if not deleted:
			raise NotificationNotFound()
		logger.info("notification deleted", extra={"notification_id": notification_id})


def _new_item(
	recipient_id: str,
	type: NotificationType | str,
	title: str,
	body: str,
	sender_id: Optional[str],
	payload: Optional[Dict[str, Any]],
	priority: NotificationPriority | str | None,
) -> NewNotification:
	kind = NotificationType(type)
	if priority is None:
		priority = NotificationPriority.URGENT if kind is NotificationType.SOS else NotificationPriority.MEDIUM
	return NewNotification(
		recipient_id=str(recipient_id),
		type=kind,
		title=title,
		body=body,
		sender_id=sender_id,
		payload=payload,
		priority=NotificationPriority(priority),
	)
