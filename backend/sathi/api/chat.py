"""FastAPI endpoints for chat messages: the non-realtime send path and re-fetch."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, status

from sathi.api.deps import get_hub
from sathi.domain.chat.schemas import (
	MarkReadRequest,
	MarkReadResponse,
	MessageContent,
	MessageListResponse,
	MessagePayload,
	UnreadCountResponse,
)
from sathi.domain.realtime.hub import RealtimeHub
from sathi.domain.realtime.registry import Connection
from sathi.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/chats", tags=["chat"])


async def _acting_connection(hub: RealtimeHub, user: AuthenticatedUser, socket_id: Optional[str]) -> Connection:
	"""The caller's live socket when X-Socket-Id names one they own, else a detached handle."""
	if socket_id:
		conn = await hub.registry.get(socket_id)
		if conn is not None and conn.user_id == user.id:
			return conn
	return Connection.detached(user)


@router.post(
	"/{chat_id}/messages",
	response_model=MessagePayload,
	response_model_by_alias=True,
	status_code=status.HTTP_201_CREATED,
)
async def send_message_endpoint(
	chat_id: str,
	payload: MessageContent,
	x_socket_id: Optional[str] = Header(default=None, alias="X-Socket-Id"),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	hub: RealtimeHub = Depends(get_hub),
) -> MessagePayload:
	conn = await _acting_connection(hub, auth_user, x_socket_id)
	return await hub.chats.send_message(conn, chat_id, payload)


@router.get("/{chat_id}/messages", response_model=MessageListResponse, response_model_by_alias=True)
async def list_messages_endpoint(
	chat_id: str,
	limit: int = Query(default=50, ge=1, le=100),
	before: Optional[datetime] = Query(default=None),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	hub: RealtimeHub = Depends(get_hub),
) -> MessageListResponse:
	items = await hub.chats.list_messages(auth_user, chat_id, limit=limit, before=before)
	next_before = items[0].created_at if len(items) == limit else None
	return MessageListResponse(items=items, next_before=next_before)


@router.post("/{chat_id}/read", response_model=MarkReadResponse, response_model_by_alias=True)
async def mark_read_endpoint(
	chat_id: str,
	payload: MarkReadRequest,
	x_socket_id: Optional[str] = Header(default=None, alias="X-Socket-Id"),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	hub: RealtimeHub = Depends(get_hub),
) -> MarkReadResponse:
	conn = await _acting_connection(hub, auth_user, x_socket_id)
	updated = await hub.chats.mark_read(conn, chat_id, payload.message_ids)
	return MarkReadResponse(chat_id=chat_id, message_ids=updated)


@router.post("/{chat_id}/unread/clear", status_code=status.HTTP_204_NO_CONTENT)
async def clear_unread_endpoint(
	chat_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	hub: RealtimeHub = Depends(get_hub),
) -> None:
	await hub.chats.clear_unread(auth_user, chat_id)


@router.get("/{chat_id}/unread", response_model=UnreadCountResponse, response_model_by_alias=True)
async def unread_count_endpoint(
	chat_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	hub: RealtimeHub = Depends(get_hub),
) -> UnreadCountResponse:
	unread = await hub.chats.unread_count(auth_user, chat_id)
	return UnreadCountResponse(chat_id=chat_id, unread=unread)
