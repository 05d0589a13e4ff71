"""Service container wiring the real-time components together.

The registry and room index are owned here and handed to every component
that needs them, so a distributed implementation of ``SessionRegistry`` or
``RoomIndex`` can be swapped in without touching the callers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sathi.domain.chat.pipeline import MessageDeliveryPipeline
from sathi.domain.chat.repo import ChatRepository, InMemoryChatRepository, PostgresChatRepository
from sathi.domain.chat.service import ChatService
from sathi.domain.notifications.repo import (
	InMemoryNotificationRepository,
	NotificationRepository,
	PostgresNotificationRepository,
)
from sathi.domain.notifications.service import NotificationService
from sathi.domain.realtime.fanout import NotificationFanout
from sathi.domain.realtime.registry import InMemorySessionRegistry, SessionRegistry
from sathi.domain.realtime.rooms import InMemoryRoomIndex, RoomIndex
from sathi.domain.realtime.sos import SosRelay
from sathi.domain.realtime.transport import Broadcaster, Transport
from sathi.domain.realtime.typing_indicators import TypingBroadcaster
from sathi.infra.auth import JwtTokenVerifier, TokenVerifier
from sathi.settings import settings


@dataclass
class RealtimeHub:
	registry: SessionRegistry
	rooms: RoomIndex
	broadcaster: Broadcaster
	chat_repo: ChatRepository
	notification_repo: NotificationRepository
	chats: ChatService
	pipeline: MessageDeliveryPipeline
	typing: TypingBroadcaster
	notifications: NotificationService
	fanout: NotificationFanout
	sos: SosRelay
	verifier: TokenVerifier

	async def ensure_schema(self) -> None:
		for repo in (self.chat_repo, self.notification_repo):
			ensure = getattr(repo, "ensure_schema", None)
			if ensure is not None:
				await ensure()


def default_repositories() -> tuple[ChatRepository, NotificationRepository]:
	if settings.uses_memory_store():
		return InMemoryChatRepository(), InMemoryNotificationRepository()
	return PostgresChatRepository(), PostgresNotificationRepository()


def build_hub(
	transport: Transport,
	*,
	chat_repo: Optional[ChatRepository] = None,
	notification_repo: Optional[NotificationRepository] = None,
	verifier: Optional[TokenVerifier] = None,
	registry: Optional[SessionRegistry] = None,
	rooms: Optional[RoomIndex] = None,
) -> RealtimeHub:
	if chat_repo is None or notification_repo is None:
		default_chat, default_notifications = default_repositories()
		chat_repo = chat_repo or default_chat
		notification_repo = notification_repo or default_notifications
	rooms = rooms or InMemoryRoomIndex()
	verifier = verifier or JwtTokenVerifier()
	registry = registry or InMemorySessionRegistry(verifier, rooms)
	broadcaster = Broadcaster(transport)
	pipeline = MessageDeliveryPipeline(chat_repo, registry, rooms, broadcaster)
	fanout = NotificationFanout(registry, broadcaster)
	return RealtimeHub(
		registry=registry,
		rooms=rooms,
		broadcaster=broadcaster,
		chat_repo=chat_repo,
		notification_repo=notification_repo,
		chats=ChatService(chat_repo, pipeline, rooms, broadcaster),
		pipeline=pipeline,
		typing=TypingBroadcaster(rooms, broadcaster),
		notifications=NotificationService(notification_repo, fanout),
		fanout=fanout,
		sos=SosRelay(registry, broadcaster),
		verifier=verifier,
	)
