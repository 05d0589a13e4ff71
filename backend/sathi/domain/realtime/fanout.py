"""Live delivery of already-persisted notifications."""

from __future__ import annotations

import logging

from sathi.domain.notifications.models import Notification
from sathi.domain.notifications.schemas import NotificationPayload
from sathi.domain.realtime.events import NewNotification
from sathi.domain.realtime.registry import SessionRegistry
from sathi.domain.realtime.transport import Broadcaster
from sathi.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class NotificationFanout:
	"""Push a notification to every live connection of its recipient.

	Persistence has already happened by the time ``deliver`` runs, so this
	never raises for delivery problems; the return value is the number of
	connections that received it live.
	"""

	def __init__(self, registry: SessionRegistry, broadcaster: Broadcaster) -> None:
		self._registry = registry
		self._broadcaster = broadcaster

	async def deliver(self, notification: Notification) -> int:
		try:
			sids = await self._registry.connections_for(notification.recipient_id)
			delivered = 0
			if sids:
				event = NewNotification(notification=NotificationPayload.from_model(notification))
				delivered = await self._broadcaster.deliver(sids, event)
		except Exception:
			logger.exception(
				"notification fanout failed",
				extra={"notification_id": notification.notification_id},
			)
			delivered = 0
		obs_metrics.notification_delivered(delivered > 0)
		return delivered
