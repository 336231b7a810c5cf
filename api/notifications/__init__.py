"""Notification endpoints."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from auth import CurrentUser
from notifications import NotificationManager, NotificationType
from ..deps import current_member

router = APIRouter(tags=["Notifications"])

class ListNotificationsRequest(BaseModel):
    type: Optional[NotificationType] = None
    unread_only: bool = False
    starred_only: bool = False
    limit: int = Field(50, ge=1, le=100)
    offset: int = Field(0, ge=0)

class MarkReadRequest(BaseModel):
    notification_ids: List[UUID]

class NotificationRef(BaseModel):
    notification_id: UUID

class NotificationSettings(BaseModel):
    """Model for notification settings; omitted fields are left unchanged."""
    order_updates: Optional[bool] = None
    refund_updates: Optional[bool] = None
    support_updates: Optional[bool] = None
    listing_updates: Optional[bool] = None

@router.post("/rpc/notifications.list")
async def list_notifications(request: ListNotificationsRequest, user: CurrentUser = Depends(current_member)):
    """List the caller's notifications, newest first."""
    return await NotificationManager().list_notifications(user.id, **request.model_dump())

@router.post("/rpc/notifications.getUnreadCount")
async def get_unread_count(user: CurrentUser = Depends(current_member)):
    count = await NotificationManager().get_unread_count(user.id)
    return {"unread_count": count}

@router.post("/rpc/notifications.markRead")
async def mark_read(request: MarkReadRequest, user: CurrentUser = Depends(current_member)):
    """Mark some of the caller's notifications as read."""
    manager = NotificationManager()
    updated = await manager.mark_read(user.id, request.notification_ids)
    return {"updated": updated, "unread_count": await manager.get_unread_count(user.id)}

@router.post("/rpc/notifications.markAllRead")
async def mark_all_read(user: CurrentUser = Depends(current_member)):
    updated = await NotificationManager().mark_all_read(user.id)
    return {"updated": updated, "unread_count": 0}

@router.post("/rpc/notifications.toggleStar")
async def toggle_star(request: NotificationRef, user: CurrentUser = Depends(current_member)):
    starred = await NotificationManager().toggle_star(user.id, request.notification_id)
    return {"notification_id": request.notification_id, "is_starred": starred}

@router.post("/rpc/notifications.delete")
async def delete_notification(request: NotificationRef, user: CurrentUser = Depends(current_member)):
    await NotificationManager().delete(user.id, request.notification_id)
    return {"success": True}

@router.post("/rpc/notifications.clearAll")
async def clear_all(user: CurrentUser = Depends(current_member)):
    deleted = await NotificationManager().clear_all(user.id)
    return {"deleted": deleted}

@router.post("/rpc/notifications.getSettings")
async def get_settings(user: CurrentUser = Depends(current_member)):
    return await NotificationManager().get_settings(user.id)

@router.post("/rpc/notifications.updateSettings")
async def update_settings(request: NotificationSettings, user: CurrentUser = Depends(current_member)):
    """Update the caller's notification settings."""
    return await NotificationManager().update_settings(user.id, **request.model_dump(exclude_none=True))
