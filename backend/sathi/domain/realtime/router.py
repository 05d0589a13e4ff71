"""Single typed dispatch point for inbound socket events."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Type, TypeVar

from sathi.domain.common.errors import InvalidPayload
from sathi.domain.common.wire import WireModel
from sathi.domain.realtime.events import CLIENT_EVENTS, parse_client_event

E = TypeVar("E", bound=WireModel)
Handler = Callable[[str, Any], Awaitable[Any]]


class EventRouter:
	"""Maps each client event variant to exactly one handler."""

	def __init__(self) -> None:
		self._handlers: Dict[Type[WireModel], Handler] = {}

	def register(self, variant: Type[E], handler: Callable[[str, E], Awaitable[Any]]) -> None:
		if variant not in CLIENT_EVENTS.values():
			raise ValueError(f"{variant.__name__} is not a client event variant")
		if variant in self._handlers:
			raise ValueError(f"handler already registered for {variant.__name__}")
		self._handlers[variant] = handler

	def on(self, variant: Type[E]) -> Callable[[Callable[[str, E], Awaitable[Any]]], Callable[[str, E], Awaitable[Any]]]:
		def decorator(handler: Callable[[str, E], Awaitable[Any]]) -> Callable[[str, E], Awaitable[Any]]:
			self.register(variant, handler)
			return handler

		return decorator

	def handles(self, name: str) -> bool:
		variant = CLIENT_EVENTS.get(name)
		return variant is not None and variant in self._handlers

	async def dispatch(self, sid: str, name: str, raw: Any) -> Any:
		event = parse_client_event(name, raw)
		handler = self._handlers.get(type(event))
		if handler is None:
			raise InvalidPayload("unknown_event")
		return await handler(sid, event)
