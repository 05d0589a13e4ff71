"""Chat operations shared by the socket namespace and the REST routes."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Sequence

from sathi.domain.chat.models import Chat
from sathi.domain.chat.pipeline import MessageDeliveryPipeline
from sathi.domain.chat.repo import ChatRepository
from sathi.domain.chat.schemas import MessageContent, MessagePayload
from sathi.domain.common.errors import ChatNotFound, NotChatMember, Unauthenticated
from sathi.domain.common.gateway import gateway_errors
from sathi.domain.realtime.events import MessagesRead
from sathi.domain.realtime.registry import Connection
from sathi.domain.realtime.rooms import RoomIndex
from sathi.domain.realtime.transport import Broadcaster
from sathi.infra.auth import AuthenticatedUser
from sathi.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class ChatService:
	def __init__(
		self,
		repo: ChatRepository,
		pipeline: MessageDeliveryPipeline,
		rooms: RoomIndex,
		broadcaster: Broadcaster,
	) -> None:
		self._repo = repo
		self._pipeline = pipeline
		self._rooms = rooms
		self._broadcaster = broadcaster

	async def authorize(self, user: Optional[AuthenticatedUser], chat_id: str) -> Chat:
		"""Return the chat when ``user`` is one of its persisted members."""
		if user is None:
			raise Unauthenticated()
		with gateway_errors("get_chat", chat_id=chat_id):
			chat = await self._repo.get_chat(chat_id)
		if chat is None:
			raise ChatNotFound()
		if not chat.has_member(user.id):
			raise NotChatMember()
		return chat

	async def join_room(self, connection: Connection, chat_id: str) -> bool:
		await self.authorize(connection.user, chat_id)
		return await self._rooms.join(connection.sid, chat_id)

	async def leave_room(self, connection: Connection, chat_id: str) -> bool:
		if connection.user is None:
			raise Unauthenticated()
		return await self._rooms.leave(connection.sid, chat_id)

	async def send_message(self, sender: Connection, chat_id: str, content: MessageContent) -> MessagePayload:
		return await self._pipeline.send(sender, chat_id, content)

	async def list_messages(
		self,
		user: AuthenticatedUser,
		chat_id: str,
		*,
		limit: int = 50,
		before: Optional[datetime] = None,
	) -> List[MessagePayload]:
		await self.authorize(user, chat_id)
		limit = max(1, min(limit, MAX_PAGE_SIZE))
		with gateway_errors("list_messages", chat_id=chat_id):
			messages = await self._repo.list_messages(chat_id, limit=limit, before=before)
		return [MessagePayload.from_model(message) for message in messages]

	async def mark_read(
		self,
		connection: Connection,
		chat_id: str,
		message_ids: Sequence[str],
	) -> List[str]:
		"""Persist read flags, then tell the room which ids flipped to read.

		Ids that were already read are not reported again. The acting
		connection is not sent its own receipt.
		"""
		user = connection.user
		await self.authorize(user, chat_id)
		with gateway_errors("mark_read", chat_id=chat_id):
			updated = await self._repo.mark_read(chat_id, list(dict.fromkeys(message_ids)))
		if not updated:
			return []
		obs_metrics.chat_read()
		members = await self._rooms.members_of(chat_id)
		event = MessagesRead(chat_id=chat_id, message_ids=updated, read_by=user.id if user else None)
		await self._broadcaster.deliver(members, event, exclude=(connection.sid,))
		return updated

	async def clear_unread(self, user: AuthenticatedUser, chat_id: str) -> None:
		await self.authorize(user, chat_id)
		with gateway_errors("clear_unread", chat_id=chat_id):
			await self._repo.clear_unread(chat_id, user.id)

	async def unread_count(self, user: AuthenticatedUser, chat_id: str) -> int:
		await self.authorize(user, chat_id)
		with gateway_errors("unread_count", chat_id=chat_id):
			return await self._repo.unread_count(chat_id, user.id)
