# Notifications Feature - Service

from typing import Any, Dict, List, Optional
from datetime import datetime
from bson import ObjectId
from app.config import settings
from app.core.logging import logger
from app.core.push_notifications import PushNotificationService
from app.features.notifications.models import Notification, PushSubscription
from app.features.notifications.schemas import NotificationResponse
from app.features.realtime.broadcaster import broadcaster
from app.features.users.service import UserService


class NotificationService:
    """
    Creates notification records as side effects of domain events.

    notify() is best-effort: a failure to store or deliver a notification is
    logged and never reaches the operation that triggered it.
    """

    @staticmethod
    async def notify(
        user_id: str,
        notification_type: str,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None
    ) -> Optional[Notification]:
        """
        Create a notification for a user.

        Args:
            user_id: Owner of the notification
            notification_type: Event tag, e.g. "new_message"
            title: Short title
            message: Body text
            data: Correlation data, e.g. {"conversation_id": ...}

        Returns:
            The stored notification, or None if it could not be stored
        """
        try:
            notification = Notification(
                user_id=user_id,
                type=notification_type,
                title=title,
                message=message,
                data=data or {},
            )
            await notification.insert()
        except Exception as e:
            logger.error(f"Failed to create {notification_type} notification for user {user_id}: {e}")
            return None

        logger.info(f"Created {notification_type} notification for user {user_id}")

        await broadcaster.send_to_user(
            user_id,
            "notification",
            NotificationService.to_response(notification).model_dump(mode="json"),
        )
        await NotificationService._push(notification)

        return notification

    @staticmethod
    async def _push(notification: Notification):
        """Forward a notification to the user's Web Push subscriptions."""
        if not PushNotificationService.is_configured():
            return

        try:
            user = await UserService.get_user(notification.user_id)
            if not user or not user.notifications_enabled:
                return

            await PushNotificationService.send_to_user(
                notification.user_id,
                title=notification.title,
                body=notification.message,
                data={"type": notification.type, **notification.data},
            )
        except Exception as e:
            logger.error(f"Failed to push notification {notification.id}: {e}")

    @staticmethod
    async def list_notifications_for(user_id: str, limit: Optional[int] = None) -> List[NotificationResponse]:
        """Get a user's notifications, most recent first."""
        limit = limit or settings.NOTIFICATION_PAGE_SIZE
        limit = max(1, min(limit, settings.NOTIFICATION_PAGE_MAX))

        notifications = await Notification.find(
            Notification.user_id == user_id
        ).sort([("created_at", -1), ("_id", -1)]).limit(limit).to_list()

        return [NotificationService.to_response(n) for n in notifications]

    @staticmethod
    async def mark_read(notification_id: str, user_id: str) -> bool:
        """
        Mark one notification as read.

        Scoped to the owner: unknown ids and other users' notifications are
        left untouched and reported as False.
        """
        if not ObjectId.is_valid(notification_id):
            return False

        result = await Notification.find(
            Notification.id == ObjectId(notification_id),
            Notification.user_id == user_id,
            Notification.is_read == False
        ).update_many({"$set": {"is_read": True, "read_at": datetime.utcnow()}})

        return bool(result and result.modified_count)

    @staticmethod
    async def mark_all_read(user_id: str) -> int:
        """Mark every unread notification of a user as read."""
        result = await Notification.find(
            Notification.user_id == user_id,
            Notification.is_read == False
        ).update_many({"$set": {"is_read": True, "read_at": datetime.utcnow()}})

        count = result.modified_count if result else 0
        logger.info(f"Marked {count} notifications as read for user {user_id}")
        return count

    @staticmethod
    async def unread_count(user_id: str) -> int:
        return await Notification.find(
            Notification.user_id == user_id,
            Notification.is_read == False
        ).count()

    @staticmethod
    async def subscribe_push(user_id: str, endpoint: str, p256dh: str, auth: str) -> PushSubscription:
        """Register (or re-activate) a Web Push subscription for a device."""
        subscription = await PushSubscription.find_one(PushSubscription.endpoint == endpoint)

        if subscription:
            subscription.user_id = user_id
            subscription.p256dh = p256dh
            subscription.auth = auth
            subscription.is_active = True
            subscription.update_timestamp()
            await subscription.save()
        else:
            subscription = PushSubscription(user_id=user_id, endpoint=endpoint, p256dh=p256dh, auth=auth)
            await subscription.insert()

        logger.info(f"Registered push subscription for user {user_id}")
        return subscription

    @staticmethod
    async def unsubscribe_push(user_id: str, endpoint: str) -> bool:
        result = await PushSubscription.find(
            PushSubscription.user_id == user_id,
            PushSubscription.endpoint == endpoint,
            PushSubscription.is_active == True
        ).update_many({"$set": {"is_active": False}})

        return bool(result and result.modified_count)

    @staticmethod
    def to_response(notification: Notification) -> NotificationResponse:
        return NotificationResponse(
            id=str(notification.id),
            type=notification.type,
            title=notification.title,
            message=notification.message,
            data=notification.data,
            is_read=notification.is_read,
            read_at=notification.read_at,
            created_at=notification.created_at,
        )
