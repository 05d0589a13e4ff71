"""Socket.IO namespace for the real-time chat and notification channel."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import parse_qs

import socketio

from sathi.domain.common.errors import RealtimeError, Unauthenticated
from sathi.domain.realtime.events import (
	Authenticate,
	JoinChat,
	LeaveChat,
	MarkRead,
	RealtimeFailure,
	Ready,
	SendMessage,
	SosLocationShare,
	SosStopShare,
	TypingStart,
	TypingStop,
)
from sathi.domain.realtime.hub import RealtimeHub
from sathi.domain.realtime.registry import Connection
from sathi.domain.realtime.router import EventRouter
from sathi.infra.auth import extract_token
from sathi.obs import metrics as obs_metrics
from sathi.obs.logging import bind_context, reset_context

logger = logging.getLogger(__name__)

_LIFECYCLE_EVENTS = frozenset({"connect", "disconnect"})


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


def handshake_token(environ: dict, auth: Any) -> Optional[str]:
	"""Token from the handshake auth payload, the Authorization header, or ``?token=``."""
	if isinstance(auth, dict) and auth.get("token"):
		return str(auth["token"])
	if isinstance(auth, str) and auth:
		return auth
	scope = environ.get("asgi.scope", environ)
	header = extract_token(_header(scope, "authorization") or environ.get("HTTP_AUTHORIZATION"))
	if header:
		return header
	query = environ.get("QUERY_STRING") or (scope.get("query_string") or b"").decode()
	values = parse_qs(query).get("token")
	return values[0] if values else None


class RealtimeNamespace(socketio.AsyncNamespace):
	"""Connections are accepted anonymously and become privileged once a token verifies."""

	def __init__(self, hub: RealtimeHub, namespace: str = "/") -> None:
		super().__init__(namespace)
		self.hub = hub
		self.router = EventRouter()
		self.router.register(Authenticate, self._on_authenticate)
		self.router.register(JoinChat, self._on_join_chat)
		self.router.register(LeaveChat, self._on_leave_chat)
		self.router.register(TypingStart, self._on_typing_start)
		self.router.register(TypingStop, self._on_typing_stop)
		self.router.register(MarkRead, self._on_mark_read)
		self.router.register(SendMessage, self._on_send_message)
		self.router.register(SosLocationShare, self._on_sos_location)
		self.router.register(SosStopShare, self._on_sos_stop)

	async def trigger_event(self, event: str, *args: Any) -> Any:
		if event in _LIFECYCLE_EVENTS:
			return await super().trigger_event(event, *args)
		if not args:
			return None
		sid = args[0]
		raw = args[1] if len(args) > 1 else None
		obs_metrics.socket_event(self.namespace, event)
		conn = await self.hub.registry.get(sid)
		tokens = bind_context(sid=sid, user_id=conn.user_id if conn else None)
		try:
			result = await self.router.dispatch(sid, event, raw)
		except RealtimeError as exc:
			await self._fail(sid, event, exc)
			return {"ok": False, "error": exc.reason}
		finally:
			reset_context(tokens)
		return result

	async def on_connect(self, sid: str, environ: dict, auth: Any = None) -> None:
		obs_metrics.socket_connected(self.namespace)
		await self.hub.registry.add(sid)
		tokens = bind_context(sid=sid)
		try:
			await self._register(sid, handshake_token(environ, auth), event="connect")
		finally:
			reset_context(tokens)

	async def on_disconnect(self, sid: str, reason: Any = None) -> None:
		obs_metrics.socket_disconnected(self.namespace)
		conn = await self.hub.registry.unregister(sid)
		logger.info(
			"socket disconnected",
			extra={"target_sid": sid, "reason": str(reason) if reason else None, "was_authenticated": bool(conn and conn.user)},
		)

	async def _register(self, sid: str, token: Optional[str], *, event: str) -> Dict[str, Any]:
		user = await self.hub.registry.register(sid, token)
		if user is None:
			await self._fail(sid, event, Unauthenticated())
			return {"ok": False, "error": Unauthenticated.reason}
		await self.hub.broadcaster.push(sid, Ready(user_id=user.id))
		return {"ok": True, "userId": user.id}

	async def _fail(self, sid: str, event: str, exc: RealtimeError) -> None:
		logger.info("socket event refused", extra={"event": event, "reason": exc.reason})
		await self.hub.broadcaster.push(sid, RealtimeFailure(code=exc.reason, event_name=event))

	async def _connection(self, sid: str) -> Connection:
		conn = await self.hub.registry.get(sid)
		if conn is None or conn.user is None:
			raise Unauthenticated()
		return conn

	async def _on_authenticate(self, sid: str, event: Authenticate) -> Dict[str, Any]:
		return await self._register(sid, event.token, event="authenticate")

	async def _on_join_chat(self, sid: str, event: JoinChat) -> Dict[str, Any]:
		conn = await self._connection(sid)
		await self.hub.chats.join_room(conn, event.chat_id)
		return {"ok": True, "chatId": event.chat_id}

	async def _on_leave_chat(self, sid: str, event: LeaveChat) -> Dict[str, Any]:
		conn = await self._connection(sid)
		await self.hub.chats.leave_room(conn, event.chat_id)
		return {"ok": True, "chatId": event.chat_id}

	async def _on_typing_start(self, sid: str, event: TypingStart) -> None:
		conn = await self._connection(sid)
		if event.chat_id not in await self.hub.rooms.rooms_of(sid):
			return None
		await self.hub.typing.start_typing(conn, event.chat_id)
		return None

	async def _on_typing_stop(self, sid: str, event: TypingStop) -> None:
		conn = await self._connection(sid)
		if event.chat_id not in await self.hub.rooms.rooms_of(sid):
			return None
		await self.hub.typing.stop_typing(conn, event.chat_id)
		return None

	async def _on_mark_read(self, sid: str, event: MarkRead) -> Dict[str, Any]:
		conn = await self._connection(sid)
		updated = await self.hub.chats.mark_read(conn, event.chat_id, event.message_ids)
		return {"ok": True, "chatId": event.chat_id, "messageIds": updated}

	async def _on_send_message(self, sid: str, event: SendMessage) -> Dict[str, Any]:
		conn = await self._connection(sid)
		message = await self.hub.chats.send_message(conn, event.chat_id, event)
		return {"ok": True, "message": message.to_wire()}

	async def _on_sos_location(self, sid: str, event: SosLocationShare) -> Dict[str, Any]:
		conn = await self._connection(sid)
		delivered = await self.hub.sos.share_location(conn, event)
		return {"ok": True, "delivered": delivered}

	async def _on_sos_stop(self, sid: str, event: SosStopShare) -> Dict[str, Any]:
		conn = await self._connection(sid)
		delivered = await self.hub.sos.stop_sharing(conn, event)
		return {"ok": True, "delivered": delivered}
