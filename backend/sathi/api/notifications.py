"""FastAPI endpoints for the notification list and read state."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from sathi.api.deps import get_hub
from sathi.domain.notifications.models import NotificationCategory, NotificationPriority
from sathi.domain.notifications.schemas import (
	MarkNotificationsRequest,
	MarkNotificationsResponse,
	NotificationCategoriesResponse,
	NotificationListResponse,
	NotificationPayload,
	NotificationUnreadResponse,
)
from sathi.domain.realtime.hub import RealtimeHub
from sathi.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse, response_model_by_alias=True)
async def list_notifications(
	limit: int = Query(default=50, ge=1, le=100),
	offset: int = Query(default=0, ge=0),
	unread_only: bool = Query(default=False, alias="unreadOnly"),
	is_read: Optional[bool] = Query(default=None, alias="isRead"),
	category: Optional[NotificationCategory] = Query(default=None),
	priority: Optional[NotificationPriority] = Query(default=None),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	hub: RealtimeHub = Depends(get_hub),
) -> NotificationListResponse:
	if unread_only:
		is_read = False
	items = await hub.notifications.list_for_user(
		auth_user.id,
		limit=limit,
		offset=offset,
		is_read=is_read,
		category=category,
		priority=priority,
	)
	unread = await hub.notifications.unread_count(auth_user.id, category=category)
	return NotificationListResponse(
		items=[NotificationPayload.from_model(item) for item in items],
		unread=unread,
	)


@router.get("/unread-count", response_model=NotificationUnreadResponse, response_model_by_alias=True)
async def unread_notifications(
	category: Optional[NotificationCategory] = Query(default=None),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	hub: RealtimeHub = Depends(get_hub),
) -> NotificationUnreadResponse:
	return NotificationUnreadResponse(unread=await hub.notifications.unread_count(auth_user.id, category=category))


@router.get("/categories", response_model=NotificationCategoriesResponse, response_model_by_alias=True)
async def notification_categories(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	hub: RealtimeHub = Depends(get_hub),
) -> NotificationCategoriesResponse:
	counts = await hub.notifications.unread_by_category(auth_user.id)
	return NotificationCategoriesResponse(categories=counts, total=sum(counts.values()))


@router.post("/read", response_model=MarkNotificationsResponse, response_model_by_alias=True)
async def mark_notifications_read(
	payload: MarkNotificationsRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	hub: RealtimeHub = Depends(get_hub),
) -> MarkNotificationsResponse:
	updated = await hub.notifications.mark_read(auth_user.id, payload.ids)
	return MarkNotificationsResponse(updated=updated)


@router.post("/read-all", response_model=MarkNotificationsResponse, response_model_by_alias=True)
async def mark_all_notifications_read(
	category: Optional[NotificationCategory] = Query(default=None),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	hub: RealtimeHub = Depends(get_hub),
) -> MarkNotificationsResponse:
	return MarkNotificationsResponse(updated=await hub.notifications.mark_all_read(auth_user.id, category=category))


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
	notification_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	hub: RealtimeHub = Depends(get_hub),
) -> None:
	await hub.notifications.delete(auth_user.id, notification_id)
