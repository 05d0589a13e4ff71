"""Outbound delivery to individual connections.

Live pushes are best-effort: a connection that cannot be reached is skipped
and counted, never reported back to the producer.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Protocol

import socketio

from sathi.domain.realtime.events import ServerEvent
from sathi.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class Transport(Protocol):
	async def send(self, sid: str, event: str, payload: Any) -> None:
		...


class SocketIOTransport:
	def __init__(self, server: socketio.AsyncServer, namespace: str = "/") -> None:
		self._server = server
		self._namespace = namespace

	async def send(self, sid: str, event: str, payload: Any) -> None:
		await self._server.emit(event, payload, to=sid, namespace=self._namespace)


class Broadcaster:
	def __init__(self, transport: Transport) -> None:
		self._transport = transport

	async def push(self, sid: str, event: ServerEvent) -> bool:
		return await self.deliver((sid,), event) == 1

	async def deliver(
		self,
		sids: Iterable[str],
		event: ServerEvent,
		*,
		exclude: Optional[Iterable[str]] = None,
	) -> int:
		"""Push ``event`` to every sid once; returns how many pushes succeeded."""
		skip = set(exclude or ())
		targets = sorted(set(sids) - skip)
		if not targets:
			return 0
		payload = event.to_wire()
		delivered = 0
		for sid in targets:
			try:
				await self._transport.send(sid, event.event, payload)
			except Exception:
				logger.debug("live delivery dropped", extra={"target_sid": sid, "event": event.event}, exc_info=True)
				obs_metrics.fanout_dropped(event.event)
				continue
			obs_metrics.fanout_delivered(event.event)
			delivered += 1
		return delivered
