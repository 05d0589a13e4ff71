from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from sathi.domain.common.wire import WireModel

from .models import Notification, NotificationCategory, NotificationPriority, NotificationType


class NotificationPayload(WireModel):
	id: str
	recipient_id: str
	sender_id: Optional[str] = None
	type: NotificationType
	category: NotificationCategory
	priority: NotificationPriority
	title: str
	message: str
	data: Dict[str, Any] = Field(default_factory=dict)
	is_read: bool = False
	created_at: datetime

	@classmethod
	def from_model(cls, notification: Notification) -> "NotificationPayload":
		return cls(
			id=notification.notification_id,
			recipient_id=notification.recipient_id,
			sender_id=notification.sender_id,
			type=notification.type,
			category=notification.category,
			priority=notification.priority,
			title=notification.title,
			message=notification.body,
			data=dict(notification.payload),
			is_read=notification.is_read,
			created_at=notification.created_at,
		)


class NotificationListResponse(WireModel):
	items: List[NotificationPayload]
	unread: int


class MarkNotificationsRequest(WireModel):
	ids: List[str] = Field(..., min_length=1, max_length=500)


class MarkNotificationsResponse(WireModel):
	updated: int


class NotificationUnreadResponse(WireModel):
	unread: int


class NotificationCategoriesResponse(WireModel):
	categories: Dict[NotificationCategory, int]
	total: int
