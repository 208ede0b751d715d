# Notifications Feature - Router

from fastapi import APIRouter, Depends, Query
from typing import Optional
from app.features.notifications.schemas import (
    NotificationListResponse,
    PushSubscriptionRequest,
    PushUnsubscribeRequest,
    UnreadCountResponse,
)
from app.features.notifications.service import NotificationService
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.shared.exceptions import NotFoundException
from app.shared.schemas import StatusResponse


router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    limit: Optional[int] = Query(None, ge=1),
    current_user: User = Depends(get_current_user)
):
    """Get the current user's notifications, most recent first."""
    user_id = str(current_user.id)

    notifications = await NotificationService.list_notifications_for(user_id, limit=limit)
    unread_count = await NotificationService.unread_count(user_id)

    return NotificationListResponse(notifications=notifications, unread_count=unread_count)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(current_user: User = Depends(get_current_user)):
    count = await NotificationService.unread_count(str(current_user.id))
    return UnreadCountResponse(unread_count=count)


@router.post("/read-all", response_model=StatusResponse)
async def mark_all_read(current_user: User = Depends(get_current_user)):
    count = await NotificationService.mark_all_read(str(current_user.id))
    return StatusResponse(message=f"Marked {count} notifications as read")


@router.post("/push-subscriptions", response_model=StatusResponse)
async def subscribe_push(
    request: PushSubscriptionRequest,
    current_user: User = Depends(get_current_user)
):
    """Register this device for Web Push notifications."""
    await NotificationService.subscribe_push(
        user_id=str(current_user.id),
        endpoint=request.endpoint,
        p256dh=request.keys.p256dh,
        auth=request.keys.auth
    )
    return StatusResponse(message="Push subscription saved")


@router.delete("/push-subscriptions", response_model=StatusResponse)
async def unsubscribe_push(
    request: PushUnsubscribeRequest,
    current_user: User = Depends(get_current_user)
):
    removed = await NotificationService.unsubscribe_push(str(current_user.id), request.endpoint)
    if not removed:
        raise NotFoundException("Push subscription not found")
    return StatusResponse(message="Push subscription removed")


@router.post("/{notification_id}/read", response_model=StatusResponse)
async def mark_read(
    notification_id: str,
    current_user: User = Depends(get_current_user)
):
    """
    Mark one notification as read.

    Unknown ids, other users' notifications and already read ones all
    report success=False and change nothing.
    """
    updated = await NotificationService.mark_read(notification_id, str(current_user.id))

    if updated:
        return StatusResponse(message="Notification marked as read")
    return StatusResponse(message="Notification not updated", success=False)
