"""Listener queue that decouples handler registration from transport connectivity.

UI code registers interest with ``on_event`` at any time. While the transport
is down the pair is queued; ``flush`` attaches every queued pair in order once
the connection is up. Events dispatched before the flush are buffered and
replayed afterwards instead of being lost.
"""

from __future__ import annotations

import inspect
import logging
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Tuple

logger = logging.getLogger(__name__)

Listener = Callable[[Any], Any]

_MAX_BUFFERED_EVENTS = 500


class ListenerQueue:
	def __init__(self, *, max_buffered: int = _MAX_BUFFERED_EVENTS) -> None:
		self._connected = False
		self._flushing = False
		self._pending: List[Tuple[str, Listener]] = []
		self._attached: Dict[str, List[Listener]] = {}
		self._buffer: Deque[Tuple[str, Any]] = deque(maxlen=max_buffered)

	@property
	def connected(self) -> bool:
		return self._connected

	def on_event(self, name: str, handler: Listener) -> None:
		"""Attach now when connected, otherwise queue. Never blocks or raises."""
		if self._connected:
			self._attached.setdefault(name, []).append(handler)
		else:
			self._pending.append((name, handler))

	def off(self, name: str, handler: Listener) -> bool:
		"""Remove ``handler`` whether it was attached or still queued."""
		removed = False
		handlers = self._attached.get(name)
		if handlers and handler in handlers:
			handlers.remove(handler)
			if not handlers:
				self._attached.pop(name, None)
			removed = True
		before = len(self._pending)
		self._pending = [(n, h) for n, h in self._pending if not (n == name and h == handler)]
		return removed or len(self._pending) != before

	def pending(self) -> List[Tuple[str, Listener]]:
		return list(self._pending)

	def listeners(self, name: str) -> List[Listener]:
		return list(self._attached.get(name, ()))

	async def flush(self) -> int:
		"""Attach queued listeners, replay buffered events, then mark the transport connected.

		Events dispatched while the replay is running join the end of the
		buffer, so nothing overtakes an event that arrived before it.
		"""
		if self._flushing:
			return 0
		self._flushing = True
		attached = 0
		try:
			while self._pending or self._buffer:
				queued, self._pending = self._pending, []
				for name, handler in queued:
					self._attached.setdefault(name, []).append(handler)
				attached += len(queued)
				if self._buffer:
					name, payload = self._buffer.popleft()
					await self._fire(name, payload)
			self._connected = True
		finally:
			self._flushing = False
		return attached

	def mark_disconnected(self) -> None:
		# Attached listeners survive a reconnect; only new registrations queue.
		self._connected = False

	async def dispatch(self, name: str, payload: Any) -> int:
		"""Deliver an inbound event; returns how many listeners ran."""
		if not self._connected:
			self._buffer.append((name, payload))
			return 0
		return await self._fire(name, payload)

	async def _fire(self, name: str, payload: Any) -> int:
		fired = 0
		for handler in list(self._attached.get(name, ())):
			try:
				result = handler(payload)
				if inspect.isawaitable(result):
					await result
			except Exception:
				logger.exception("realtime listener failed", extra={"event": name})
				continue
			fired += 1
		return fired
