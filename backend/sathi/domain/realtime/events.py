"""Socket event vocabulary.

Inbound events are a discriminated union keyed on ``type`` (the Socket.IO
event name is injected as the tag before validation). Outbound events are
``ServerEvent`` models that carry their own event name.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Mapping, Optional, Type, Union

from pydantic import Field, TypeAdapter, ValidationError

from sathi.domain.chat.schemas import MessageContent, MessagePayload
from sathi.domain.common.errors import InvalidPayload
from sathi.domain.common.wire import WireModel
from sathi.domain.notifications.schemas import NotificationPayload

# ---------------------------------------------------------------------------
# client -> server


class Authenticate(WireModel):
	type: Literal["authenticate"] = "authenticate"
	token: str = Field(..., min_length=1)


class JoinChat(WireModel):
	type: Literal["join_chat"] = "join_chat"
	chat_id: str = Field(..., min_length=1)


class LeaveChat(WireModel):
	type: Literal["leave_chat"] = "leave_chat"
	chat_id: str = Field(..., min_length=1)


class TypingStart(WireModel):
	type: Literal["typing_start"] = "typing_start"
	chat_id: str = Field(..., min_length=1)


class TypingStop(WireModel):
	type: Literal["typing_stop"] = "typing_stop"
	chat_id: str = Field(..., min_length=1)


class MarkRead(WireModel):
	type: Literal["mark_read"] = "mark_read"
	chat_id: str = Field(..., min_length=1)
	message_ids: List[str] = Field(..., min_length=1, max_length=500)


class SendMessage(MessageContent):
	type: Literal["send_message"] = "send_message"
	chat_id: str = Field(..., min_length=1)


class SosLocationShare(WireModel):
	type: Literal["sos_location_update"] = "sos_location_update"
	recipient_ids: List[str] = Field(..., min_length=1, max_length=50)
	latitude: float = Field(..., ge=-90, le=90)
	longitude: float = Field(..., ge=-180, le=180)
	timestamp: Optional[datetime] = None


class SosStopShare(WireModel):
	type: Literal["sos_stop_sharing"] = "sos_stop_sharing"
	recipient_ids: List[str] = Field(default_factory=list, max_length=50)


ClientEvent = Annotated[
	Union[
		Authenticate,
		JoinChat,
		LeaveChat,
		TypingStart,
		TypingStop,
		MarkRead,
		SendMessage,
		SosLocationShare,
		SosStopShare,
	],
	Field(discriminator="type"),
]

_CLIENT_EVENT_ADAPTER: TypeAdapter[Any] = TypeAdapter(ClientEvent)

CLIENT_EVENTS: Dict[str, Type[WireModel]] = {
	model.model_fields["type"].default: model
	for model in (
		Authenticate,
		JoinChat,
		LeaveChat,
		TypingStart,
		TypingStop,
		MarkRead,
		SendMessage,
		SosLocationShare,
		SosStopShare,
	)
}

# Events whose legacy payload was the bare chat id string.
_CHAT_ID_SHORTHAND = frozenset({"join_chat", "leave_chat", "typing_start", "typing_stop"})


def parse_client_event(name: str, raw: Any) -> WireModel:
	"""Validate ``raw`` as the variant tagged ``name``; raise InvalidPayload otherwise."""
	if name not in CLIENT_EVENTS:
		raise InvalidPayload("unknown_event")
	if isinstance(raw, str) and name in _CHAT_ID_SHORTHAND:
		data: Dict[str, Any] = {"chatId": raw}
	elif isinstance(raw, str) and name == "authenticate":
		data = {"token": raw}
	elif raw is None:
		data = {}
	elif isinstance(raw, Mapping):
		data = dict(raw)
	else:
		raise InvalidPayload()
	data["type"] = name
	try:
		return _CLIENT_EVENT_ADAPTER.validate_python(data)
	except ValidationError:
		raise InvalidPayload() from None


# ---------------------------------------------------------------------------
# server -> client


class ServerEvent(WireModel):
	event: ClassVar[str]

	@classmethod
	def from_wire(cls, payload: Any) -> "ServerEvent":
		return cls.model_validate(payload)


class NewMessage(ServerEvent):
	event: ClassVar[str] = "new_message"

	chat_id: str
	message: MessagePayload


class UserTyping(ServerEvent):
	event: ClassVar[str] = "user_typing"

	chat_id: str
	user_id: str
	user_name: str


class UserStoppedTyping(ServerEvent):
	event: ClassVar[str] = "user_stopped_typing"

	chat_id: str
	user_id: str
	user_name: str


class MessagesRead(ServerEvent):
	event: ClassVar[str] = "messages_read"

	chat_id: str
	message_ids: List[str]
	read_by: Optional[str] = None


class NewNotification(ServerEvent):
	"""The wire payload is the notification object itself."""

	event: ClassVar[str] = "new_notification"

	notification: NotificationPayload

	def to_wire(self) -> Dict[str, Any]:
		return self.notification.to_wire()

	@classmethod
	def from_wire(cls, payload: Any) -> "NewNotification":
		return cls(notification=NotificationPayload.model_validate(payload))


class SosLocation(ServerEvent):
	event: ClassVar[str] = "sos_location_update"

	sender_id: str
	latitude: float
	longitude: float
	timestamp: datetime


class SosStopped(ServerEvent):
	event: ClassVar[str] = "sos_stop_sharing"

	sender_id: str
	timestamp: datetime


class Ready(ServerEvent):
	event: ClassVar[str] = "realtime:ready"

	user_id: str


class RealtimeFailure(ServerEvent):
	event: ClassVar[str] = "realtime:error"

	code: str
	event_name: Optional[str] = Field(default=None, alias="event")


SERVER_EVENTS: Dict[str, Type[ServerEvent]] = {
	model.event: model
	for model in (
		NewMessage,
		UserTyping,
		UserStoppedTyping,
		MessagesRead,
		NewNotification,
		SosLocation,
		SosStopped,
		Ready,
		RealtimeFailure,
	)
}


def parse_server_event(name: str, payload: Any) -> Optional[ServerEvent]:
	model = SERVER_EVENTS.get(name)
	if model is None:
		return None
	return model.from_wire(payload)
