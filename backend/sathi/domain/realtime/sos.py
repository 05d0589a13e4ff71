"""Direct-addressed SOS location relay. Nothing is persisted here."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, Optional, Set

from sathi.domain.common.errors import RateLimited, Unauthenticated
from sathi.domain.realtime.events import SosLocation, SosLocationShare, SosStopped, SosStopShare
from sathi.domain.realtime.registry import Connection, SessionRegistry
from sathi.domain.realtime.transport import Broadcaster
from sathi.infra import rate_limit
from sathi.obs import metrics as obs_metrics
from sathi.settings import settings

Limiter = Callable[..., Awaitable[bool]]


class SosRelay:
	def __init__(
		self,
		registry: SessionRegistry,
		broadcaster: Broadcaster,
		*,
		limiter: Limiter = rate_limit.allow,
		clock: Optional[Callable[[], datetime]] = None,
	) -> None:
		self._registry = registry
		self._broadcaster = broadcaster
		self._limiter = limiter
		self._clock = clock or (lambda: datetime.now(timezone.utc))

	async def share_location(self, connection: Connection, update: SosLocationShare) -> int:
		if connection.user is None:
			raise Unauthenticated()
		if not await self._limiter("sos", connection.user.id, limit=settings.sos_rate_limit_per_minute):
			obs_metrics.rate_limited("sos")
			raise RateLimited()
		event = SosLocation(
			sender_id=connection.user.id,
			latitude=update.latitude,
			longitude=update.longitude,
			timestamp=update.timestamp or self._clock(),
		)
		return await self._relay(update.recipient_ids, event)

	async def stop_sharing(self, connection: Connection, update: SosStopShare) -> int:
		if connection.user is None:
			raise Unauthenticated()
		event = SosStopped(sender_id=connection.user.id, timestamp=self._clock())
		return await self._relay(update.recipient_ids, event)

	async def _relay(self, recipient_ids: Iterable[str], event: SosLocation | SosStopped) -> int:
		sids: Set[str] = set()
		for recipient_id in dict.fromkeys(recipient_ids):
			sids |= await self._registry.connections_for(recipient_id)
		return await self._broadcaster.deliver(sids, event)
