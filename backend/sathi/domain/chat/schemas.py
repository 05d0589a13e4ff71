"""Pydantic schemas for chat transport (socket payloads and REST bodies)."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import Field, model_validator

from sathi.domain.common.wire import WireModel
from sathi.settings import settings

from .models import Message


class MessageContent(WireModel):
	text: str = Field(default="", max_length=settings.max_message_length)
	image: Optional[str] = Field(default=None, max_length=2048)
	reply_to: Optional[str] = None
	client_msg_id: Optional[str] = Field(default=None, max_length=64)

	@model_validator(mode="after")
	def _require_content(self) -> "MessageContent":
		if not self.text.strip() and not self.image:
			raise ValueError("message text or image is required")
		return self


class MessageSender(WireModel):
	id: str
	name: Optional[str] = None


class MessagePayload(WireModel):
	id: str
	chat_id: str
	sender: MessageSender
	text: str
	image: Optional[str] = None
	reply_to: Optional[str] = None
	client_msg_id: Optional[str] = None
	read: bool = False
	created_at: datetime

	@classmethod
	def from_model(cls, message: Message, *, sender_name: Optional[str] = None) -> "MessagePayload":
		return cls(
			id=message.message_id,
			chat_id=message.chat_id,
			sender=MessageSender(id=message.sender_id, name=sender_name),
			text=message.text,
			image=message.image_url,
			reply_to=message.reply_to_id,
			client_msg_id=message.client_msg_id,
			read=message.read,
			created_at=message.created_at,
		)


class MessageListResponse(WireModel):
	items: List[MessagePayload]
	next_before: Optional[datetime] = None


class MarkReadRequest(WireModel):
	message_ids: List[str] = Field(..., min_length=1, max_length=500)


class MarkReadResponse(WireModel):
	chat_id: str
	message_ids: List[str]


class UnreadCountResponse(WireModel):
	chat_id: str
	unread: int
