"""Python client for the real-time channel, built on ``socketio.AsyncClient``."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

import socketio
from pydantic import ValidationError
from socketio import exceptions as sio_exceptions

from sathi.client.queue import Listener, ListenerQueue
from sathi.client.state import PendingOperations, PendingSend
from sathi.domain.chat.schemas import MessageContent, MessagePayload
from sathi.domain.realtime.events import SERVER_EVENTS, parse_server_event
from sathi.settings import settings

logger = logging.getLogger(__name__)


class SendRejected(Exception):
	def __init__(self, op: PendingSend, error: str) -> None:
		super().__init__(error)
		self.op = op
		self.error = error


class RealtimeClient:
	def __init__(
		self,
		url: str,
		*,
		namespace: str = "/",
		sio: Optional[socketio.AsyncClient] = None,
	) -> None:
		self.url = url
		self.namespace = namespace
		self.sio = sio or socketio.AsyncClient(reconnection=True, reconnection_attempts=5, reconnection_delay=1)
		self.listeners = ListenerQueue()
		self.pending = PendingOperations()
		self.user_id: Optional[str] = None
		self.sio.on("connect", self._on_connect, namespace=namespace)
		self.sio.on("disconnect", self._on_disconnect, namespace=namespace)
		for name in SERVER_EVENTS:
			self._bind(name)

	def _bind(self, name: str) -> None:
		async def handler(payload: Any = None) -> None:
			await self.receive(name, payload)

		self.sio.on(name, handler, namespace=self.namespace)

	async def _on_connect(self) -> None:
		await self.listeners.flush()

	async def _on_disconnect(self, *args: Any) -> None:
		self.listeners.mark_disconnected()

	async def receive(self, name: str, payload: Any) -> int:
		try:
			event = parse_server_event(name, payload)
		except ValidationError:
			logger.warning("malformed realtime event dropped", extra={"event": name})
			return 0
		if event is None:
			return 0
		if name == "realtime:ready":
			self.user_id = event.user_id  # type: ignore[attr-defined]
		return await self.listeners.dispatch(name, event)

	def on_event(self, name: str, handler: Listener) -> None:
		self.listeners.on_event(name, handler)

	def off(self, name: str, handler: Listener) -> bool:
		return self.listeners.off(name, handler)

	async def connect(self, token: str, *, transports: Optional[Iterable[str]] = None) -> None:
		await self.sio.connect(
			self.url,
			auth={"token": token},
			namespaces=[self.namespace],
			transports=list(transports) if transports else None,
		)

	async def disconnect(self) -> None:
		await self.sio.disconnect()

	async def authenticate(self, token: str) -> Dict[str, Any]:
		return await self._call("authenticate", {"token": token})

	async def join_chat(self, chat_id: str) -> Dict[str, Any]:
		return await self._call("join_chat", {"chatId": chat_id})

	async def leave_chat(self, chat_id: str) -> Dict[str, Any]:
		return await self._call("leave_chat", {"chatId": chat_id})

	async def start_typing(self, chat_id: str) -> None:
		await self.sio.emit("typing_start", {"chatId": chat_id}, namespace=self.namespace)

	async def stop_typing(self, chat_id: str) -> None:
		await self.sio.emit("typing_stop", {"chatId": chat_id}, namespace=self.namespace)

	async def mark_read(self, chat_id: str, message_ids: Iterable[str]) -> Dict[str, Any]:
		return await self._call("mark_read", {"chatId": chat_id, "messageIds": list(message_ids)})

	async def send_message(
		self,
		chat_id: str,
		text: str = "",
		*,
		image: Optional[str] = None,
		reply_to: Optional[str] = None,
	) -> MessagePayload:
		op = self.pending.begin(chat_id, MessageContent(text=text, image=image, reply_to=reply_to))
		return await self._deliver(op)

	async def retry(self, client_msg_id: str) -> MessagePayload:
		return await self._deliver(self.pending.retry(client_msg_id))

	async def _deliver(self, op: PendingSend) -> MessagePayload:
		payload = {"chatId": op.chat_id, **op.content.to_wire()}
		try:
			ack = await self._call("send_message", payload)
		except sio_exceptions.TimeoutError as exc:
			self.pending.reject(op.client_msg_id, "timeout")
			raise SendRejected(op, "timeout") from exc
		except sio_exceptions.BadNamespaceError as exc:
			self.pending.reject(op.client_msg_id, "disconnected")
			raise SendRejected(op, "disconnected") from exc
		if not isinstance(ack, dict) or not ack.get("ok"):
			error = ack.get("error", "send_failed") if isinstance(ack, dict) else "send_failed"
			self.pending.reject(op.client_msg_id, error)
			raise SendRejected(op, error)
		message = MessagePayload.model_validate(ack["message"])
		self.pending.resolve(op.client_msg_id, message)
		return message

	async def share_sos_location(
		self,
		recipient_ids: Iterable[str],
		latitude: float,
		longitude: float,
	) -> Dict[str, Any]:
		return await self._call(
			"sos_location_update",
			{"recipientIds": list(recipient_ids), "latitude": latitude, "longitude": longitude},
		)

	async def stop_sos_sharing(self, recipient_ids: Iterable[str]) -> Dict[str, Any]:
		return await self._call("sos_stop_sharing", {"recipientIds": list(recipient_ids)})

	async def _call(self, event: str, payload: Dict[str, Any]) -> Any:
		return await self.sio.call(
			event,
			payload,
			namespace=self.namespace,
			timeout=settings.send_ack_timeout_seconds,
		)
