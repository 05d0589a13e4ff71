"""Message delivery: persist, update the chat summary, fan out, acknowledge.

Sends are serialized per chat so every continuously connected observer sees
messages in the order they were persisted. Nothing is broadcast unless the
message write succeeded; live pushes after that are best-effort.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Dict, Optional, Set

from sathi.domain.chat.models import Chat
from sathi.domain.chat.repo import ChatRepository
from sathi.domain.chat.schemas import MessageContent, MessagePayload
from sathi.domain.common.errors import ChatNotFound, NotChatMember, SendFailed, Unauthenticated
from sathi.domain.realtime.events import NewMessage
from sathi.domain.realtime.registry import Connection, SessionRegistry
from sathi.domain.realtime.rooms import RoomIndex
from sathi.domain.realtime.transport import Broadcaster
from sathi.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class _ChatSequencer:
	"""One asyncio lock per chat, discarded once nobody is waiting on it."""

	def __init__(self) -> None:
		self._locks: Dict[str, asyncio.Lock] = {}
		self._waiters: Dict[str, int] = {}

	@asynccontextmanager
	async def hold(self, chat_id: str) -> AsyncIterator[None]:
		lock = self._locks.setdefault(chat_id, asyncio.Lock())
		self._waiters[chat_id] = self._waiters.get(chat_id, 0) + 1
		try:
			async with lock:
				yield
		finally:
			self._waiters[chat_id] -= 1
			if self._waiters[chat_id] == 0:
				self._waiters.pop(chat_id, None)
				self._locks.pop(chat_id, None)


class MessageDeliveryPipeline:
	def __init__(
		self,
		repo: ChatRepository,
		registry: SessionRegistry,
		rooms: RoomIndex,
		broadcaster: Broadcaster,
		*,
		clock: Optional[Callable[[], datetime]] = None,
	) -> None:
		self._repo = repo
		self._registry = registry
		self._rooms = rooms
		self._broadcaster = broadcaster
		self._clock = clock or (lambda: datetime.now(timezone.utc))
		self._sequencer = _ChatSequencer()

	async def send(self, sender: Connection, chat_id: str, content: MessageContent) -> MessagePayload:
		"""Deliver a message and return it as the sender's acknowledgement.

		The originating connection is left out of the broadcast; the return
		value is its correlated copy. Raises ``SendFailed`` when the message
		could not be persisted, in which case nothing was broadcast.
		"""
		if sender.user is None:
			obs_metrics.chat_send_failed("unauthenticated")
			raise Unauthenticated()
		user = sender.user
		try:
			chat = await self._repo.get_chat(chat_id)
		except Exception as exc:
			obs_metrics.chat_send_failed("persistence")
			logger.exception("chat lookup failed", extra={"chat_id": chat_id})
			raise SendFailed() from exc
		if chat is None:
			obs_metrics.chat_send_failed("chat_not_found")
			raise ChatNotFound()
		if not chat.has_member(user.id):
			obs_metrics.chat_send_failed("not_chat_member")
			raise NotChatMember()

		async with self._sequencer.hold(chat_id):
			try:
				message = await self._repo.create_message(
					chat_id=chat_id,
					sender_id=user.id,
					text=content.text,
					created_at=self._clock(),
					image_url=content.image,
					reply_to_id=content.reply_to,
					client_msg_id=content.client_msg_id,
				)
			except Exception as exc:
				obs_metrics.chat_send_failed("persistence")
				logger.exception("chat message persistence failed", extra={"chat_id": chat_id})
				raise SendFailed() from exc
			try:
				await self._repo.record_message(chat_id, message.message_id, user.id)
			except Exception:
				# The message is durable; a stale summary heals on the next send.
				logger.exception(
					"chat summary update failed",
					extra={"chat_id": chat_id, "message_id": message.message_id},
				)
			payload = MessagePayload.from_model(message, sender_name=user.name)
			targets = await self._targets(chat)
			delivered = await self._broadcaster.deliver(
				targets,
				NewMessage(chat_id=chat_id, message=payload),
				exclude=(sender.sid,),
			)
		obs_metrics.chat_message_sent()
		logger.info(
			"chat message sent",
			extra={"chat_id": chat_id, "message_id": message.message_id, "delivered": delivered},
		)
		return payload

	async def _targets(self, chat: Chat) -> Set[str]:
		"""Room connections plus every live connection of every chat member."""
		targets = set(await self._rooms.members_of(chat.chat_id))
		for member_id in chat.members:
			targets |= await self._registry.connections_for(member_id)
		return targets
