"""Domain models for persisted chats and messages."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple


@dataclass(slots=True)
class Chat:
	"""Persisted chat aggregate.

	``members`` gates who may ever see the chat; it says nothing about who is
	looking at the thread right now (that is the room index's job).
	"""

	chat_id: str
	members: Tuple[str, ...]
	last_message_id: Optional[str] = None
	updated_at: Optional[datetime] = None

	def has_member(self, user_id: str) -> bool:
		return str(user_id) in self.members


@dataclass(slots=True)
class Message:
	message_id: str
	chat_id: str
	sender_id: str
	text: str
	created_at: datetime
	image_url: Optional[str] = None
	reply_to_id: Optional[str] = None
	client_msg_id: Optional[str] = None
	read: bool = False

	def is_from(self, user_id: str) -> bool:
		return self.sender_id == str(user_id)
