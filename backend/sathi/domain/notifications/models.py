"""Notification records and their type taxonomy."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class NotificationType(str, Enum):
	RIDE_REQUEST = "ride_request"
	RIDE_INVITATION = "ride_invitation"
	RIDE_CONFIRMATION = "ride_confirmation"
	RIDE_CANCELLATION = "ride_cancellation"
	RIDE_COMPLETION = "ride_completion"
	ETA_CHANGE = "eta_change"
	ROUTE_CHANGE = "route_change"
	CAPACITY_ALERT = "capacity_alert"
	FRIEND_REQUEST = "friend_request"
	FRIEND_ACTIVITY = "friend_activity"
	STATUS_CHANGE = "status_change"
	SOS = "sos"
	MESSAGE = "message"
	SYSTEM = "system"

	@property
	def category(self) -> "NotificationCategory":
		return _CATEGORIES[self]


class NotificationCategory(str, Enum):
	RIDE = "ride"
	SOCIAL = "social"
	SOS = "sos"
	SYSTEM = "system"

	@property
	def types(self) -> List[NotificationType]:
		return [kind for kind, category in _CATEGORIES.items() if category is self]


class NotificationPriority(str, Enum):
	LOW = "low"
	MEDIUM = "medium"
	HIGH = "high"
	URGENT = "urgent"


_CATEGORIES: Dict[NotificationType, NotificationCategory] = {
	NotificationType.RIDE_REQUEST: NotificationCategory.RIDE,
	NotificationType.RIDE_INVITATION: NotificationCategory.RIDE,
	NotificationType.RIDE_CONFIRMATION: NotificationCategory.RIDE,
	NotificationType.RIDE_CANCELLATION: NotificationCategory.RIDE,
	NotificationType.RIDE_COMPLETION: NotificationCategory.RIDE,
	NotificationType.ETA_CHANGE: NotificationCategory.RIDE,
	NotificationType.ROUTE_CHANGE: NotificationCategory.RIDE,
	NotificationType.CAPACITY_ALERT: NotificationCategory.RIDE,
	NotificationType.FRIEND_REQUEST: NotificationCategory.SOCIAL,
	NotificationType.FRIEND_ACTIVITY: NotificationCategory.SOCIAL,
	NotificationType.STATUS_CHANGE: NotificationCategory.SOCIAL,
	NotificationType.MESSAGE: NotificationCategory.SOCIAL,
	NotificationType.SOS: NotificationCategory.SOS,
	NotificationType.SYSTEM: NotificationCategory.SYSTEM,
}


@dataclass(slots=True)
class Notification:
	notification_id: str
	recipient_id: str
	type: NotificationType
	title: str
	body: str
	created_at: datetime
	sender_id: Optional[str] = None
	payload: Dict[str, Any] = field(default_factory=dict)
	priority: NotificationPriority = NotificationPriority.MEDIUM
	read_at: Optional[datetime] = None

	@property
	def category(self) -> NotificationCategory:
		return self.type.category

	@property
	def is_read(self) -> bool:
		return self.read_at is not None
