"""Client-side state reconciled against server acknowledgements and broadcasts.

Optimistic copies are keyed by the client-generated correlation id
(``client_msg_id``) and swapped for the server copy when the acknowledgement
or a matching broadcast arrives. Content equality is never used to match.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Literal, Optional, Tuple

import ulid

from sathi.domain.chat.schemas import MessageContent, MessagePayload
from sathi.domain.realtime.events import NewMessage, UserStoppedTyping, UserTyping
from sathi.settings import settings

SendStatus = Literal["pending", "sent", "failed"]


def new_correlation_id() -> str:
	return str(ulid.new())


@dataclass
class PendingSend:
	client_msg_id: str
	chat_id: str
	content: MessageContent
	status: SendStatus = "pending"
	attempts: int = 1
	error: Optional[str] = None
	message: Optional[MessagePayload] = None
	created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class PendingOperations:
	"""Correlation table for sends awaiting their acknowledgement."""

	def __init__(self) -> None:
		self._ops: Dict[str, PendingSend] = {}

	def __len__(self) -> int:
		return len(self._ops)

	def __contains__(self, client_msg_id: object) -> bool:
		return client_msg_id in self._ops

	def begin(self, chat_id: str, content: MessageContent) -> PendingSend:
		client_msg_id = content.client_msg_id or new_correlation_id()
		content = content.model_copy(update={"client_msg_id": client_msg_id})
		op = PendingSend(client_msg_id=client_msg_id, chat_id=chat_id, content=content)
		self._ops[client_msg_id] = op
		return op

	def get(self, client_msg_id: str) -> Optional[PendingSend]:
		return self._ops.get(client_msg_id)

	def resolve(self, client_msg_id: str, message: MessagePayload) -> Optional[PendingSend]:
		op = self._ops.pop(client_msg_id, None)
		if op is not None:
			op.status = "sent"
			op.error = None
			op.message = message
		return op

	def reject(self, client_msg_id: str, error: str) -> Optional[PendingSend]:
		op = self._ops.get(client_msg_id)
		if op is not None:
			op.status = "failed"
			op.error = error
		return op

	def retry(self, client_msg_id: str) -> PendingSend:
		op = self._ops.get(client_msg_id)
		if op is None:
			raise KeyError(client_msg_id)
		if op.status != "failed":
			raise ValueError(f"send {client_msg_id} is {op.status}, only failed sends can be retried")
		op.status = "pending"
		op.error = None
		op.attempts += 1
		return op

	def discard(self, client_msg_id: str) -> Optional[PendingSend]:
		return self._ops.pop(client_msg_id, None)

	def for_chat(self, chat_id: str) -> List[PendingSend]:
		return [op for op in self._ops.values() if op.chat_id == chat_id]


@dataclass
class ThreadEntry:
	key: str
	status: SendStatus
	client_msg_id: Optional[str] = None
	message: Optional[MessagePayload] = None
	pending: Optional[PendingSend] = None

	@property
	def message_id(self) -> Optional[str]:
		return self.message.id if self.message else None


class ThreadState:
	"""Local message list for one chat."""

	def __init__(self, chat_id: str) -> None:
		self.chat_id = chat_id
		self._entries: List[ThreadEntry] = []

	@property
	def entries(self) -> List[ThreadEntry]:
		return list(self._entries)

	def message_ids(self) -> List[str]:
		return [entry.message_id for entry in self._entries if entry.message_id]

	def add_optimistic(self, op: PendingSend) -> ThreadEntry:
		existing = self._by_correlation(op.client_msg_id)
		if existing is not None:
			existing.status = op.status
			existing.pending = op
			return existing
		entry = ThreadEntry(key=op.client_msg_id, status="pending", client_msg_id=op.client_msg_id, pending=op)
		self._entries.append(entry)
		return entry

	def confirm(self, message: MessagePayload) -> ThreadEntry:
		"""Reconcile the acknowledgement (or an echoed broadcast) with its optimistic copy."""
		already = self._by_message_id(message.id)
		optimistic = self._by_correlation(message.client_msg_id) if message.client_msg_id else None
		if already is not None:
			if optimistic is not None and optimistic is not already:
				self._entries.remove(optimistic)
			return already
		if optimistic is not None:
			optimistic.key = message.id
			optimistic.message = message
			optimistic.status = "sent"
			optimistic.pending = None
			return optimistic
		entry = ThreadEntry(key=message.id, status="sent", client_msg_id=message.client_msg_id, message=message)
		self._entries.append(entry)
		return entry

	def apply_broadcast(self, message: MessagePayload) -> Optional[ThreadEntry]:
		if message.chat_id != self.chat_id:
			return None
		return self.confirm(message)

	def mark_failed(self, client_msg_id: str, error: Optional[str] = None) -> Optional[ThreadEntry]:
		entry = self._by_correlation(client_msg_id)
		if entry is None or entry.message is not None:
			return None
		entry.status = "failed"
		if entry.pending is not None:
			entry.pending.error = error
		return entry

	def apply_read(self, message_ids: Iterable[str]) -> int:
		wanted = set(message_ids)
		changed = 0
		for entry in self._entries:
			if entry.message is not None and entry.message.id in wanted and not entry.message.read:
				entry.message = entry.message.model_copy(update={"read": True})
				changed += 1
		return changed

	def replace_all(self, messages: Iterable[MessagePayload]) -> None:
		"""Adopt a durable re-fetch; unmatched local sends stay at the tail."""
		fresh = [
			ThreadEntry(key=message.id, status="sent", client_msg_id=message.client_msg_id, message=message)
			for message in messages
			if message.chat_id == self.chat_id
		]
		confirmed = {entry.client_msg_id for entry in fresh if entry.client_msg_id}
		local = [
			entry
			for entry in self._entries
			if entry.message is None and entry.client_msg_id not in confirmed
		]
		self._entries = fresh + local

	def _by_correlation(self, client_msg_id: Optional[str]) -> Optional[ThreadEntry]:
		if not client_msg_id:
			return None
		for entry in self._entries:
			if entry.client_msg_id == client_msg_id:
				return entry
		return None

	def _by_message_id(self, message_id: str) -> Optional[ThreadEntry]:
		for entry in self._entries:
			if entry.message_id == message_id:
				return entry
		return None


class TypingState:
	"""Peers currently typing, expiring after a fixed quiet interval.

	The server never sends a stop for a client that vanished, so expiry is the
	only thing that clears such an indicator.
	"""

	def __init__(
		self,
		*,
		self_id: Optional[str] = None,
		timeout_seconds: Optional[float] = None,
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		self._self_id = self_id
		self._timeout = settings.typing_timeout_seconds if timeout_seconds is None else timeout_seconds
		self._clock = clock
		self._typing: Dict[Tuple[str, str], Tuple[str, float]] = {}

	def apply(self, event: UserTyping | UserStoppedTyping) -> None:
		if isinstance(event, UserTyping):
			self.start(event.chat_id, event.user_id, event.user_name)
		else:
			self.stop(event.chat_id, event.user_id)

	def start(self, chat_id: str, user_id: str, user_name: str) -> None:
		if user_id == self._self_id:
			return
		self._typing[(chat_id, user_id)] = (user_name, self._clock() + self._timeout)

	def stop(self, chat_id: str, user_id: str) -> None:
		self._typing.pop((chat_id, user_id), None)

	def active(self, chat_id: str) -> List[Tuple[str, str]]:
		self.expire()
		return sorted(
			(user_id, name) for (cid, user_id), (name, _) in self._typing.items() if cid == chat_id
		)

	def expire(self) -> int:
		now = self._clock()
		stale = [key for key, (_, deadline) in self._typing.items() if deadline <= now]
		for key in stale:
			del self._typing[key]
		return len(stale)


@dataclass
class ChatSummary:
	chat_id: str
	last_message: Optional[MessagePayload] = None
	unread: int = 0


class ChatListState:
	"""Per-chat last message and unread badge, driven by ``new_message`` broadcasts."""

	def __init__(self, user_id: str) -> None:
		self._user_id = user_id
		self._chats: Dict[str, ChatSummary] = {}
		self.open_chat_id: Optional[str] = None

	def get(self, chat_id: str) -> ChatSummary:
		return self._chats.setdefault(chat_id, ChatSummary(chat_id=chat_id))

	def set_unread(self, chat_id: str, unread: int) -> None:
		self.get(chat_id).unread = max(0, unread)

	def clear(self, chat_id: str) -> None:
		self.get(chat_id).unread = 0

	def apply(self, event: NewMessage) -> ChatSummary:
		summary = self.get(event.chat_id)
		message = event.message
		if summary.last_message is not None and summary.last_message.id == message.id:
			return summary
		if summary.last_message is None or summary.last_message.created_at <= message.created_at:
			summary.last_message = message
		if message.sender.id != self._user_id and event.chat_id != self.open_chat_id:
			summary.unread += 1
		return summary

	def ordered(self) -> List[ChatSummary]:
		epoch = datetime.min.replace(tzinfo=timezone.utc)
		return sorted(
			self._chats.values(),
			key=lambda summary: summary.last_message.created_at if summary.last_message else epoch,
			reverse=True,
		)
