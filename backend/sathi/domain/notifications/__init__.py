"""Notification domain exports."""

from .models import Notification, NotificationCategory, NotificationPriority, NotificationType

__all__ = [
	"Notification",
	"NotificationCategory",
	"NotificationPriority",
	"NotificationType",
]
