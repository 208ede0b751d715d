# Push Notification Service
import asyncio
import json
from typing import Optional
from pywebpush import webpush, WebPushException
from app.features.notifications.models import PushSubscription
from app.core.logging import logger
from app.config import settings


class PushNotificationService:
    """Service for sending Web Push notifications."""

    @staticmethod
    def get_vapid_credentials():
        """Get VAPID credentials from settings."""
        public_key = settings.VAPID_PUBLIC_KEY
        private_key = settings.VAPID_PRIVATE_KEY

        if not public_key or not private_key:
            return None, None

        return public_key, private_key

    @staticmethod
    def is_configured() -> bool:
        public_key, private_key = PushNotificationService.get_vapid_credentials()
        return bool(public_key and private_key)

    @staticmethod
    async def send_push_notification(
        subscription: PushSubscription,
        title: str,
        body: str,
        data: Optional[dict] = None
    ) -> bool:
        """
        Send a push notification to a subscription.

        Args:
            subscription: PushSubscription model instance
            title: Notification title
            body: Notification body
            data: Optional additional data

        Returns:
            bool: True if sent successfully, False otherwise
        """
        public_key, private_key = PushNotificationService.get_vapid_credentials()
        if not public_key or not private_key:
            return False

        subscription_info = {
            "endpoint": subscription.endpoint,
            "keys": {
                "p256dh": subscription.p256dh,
                "auth": subscription.auth
            }
        }

        payload = {
            "title": title,
            "body": body,
            "icon": "/images/logo.svg",
            "badge": "/images/logo.svg",
            "tag": (data or {}).get("type", "notification"),
            "data": data or {}
        }

        try:
            # webpush is blocking, keep it off the event loop
            await asyncio.to_thread(
                webpush,
                subscription_info=subscription_info,
                data=json.dumps(payload),
                vapid_private_key=private_key,
                vapid_claims={"sub": f"mailto:{settings.VAPID_CLAIM_EMAIL}"},
            )
            logger.info(f"Push notification sent to user {subscription.user_id}")
            return True

        except WebPushException as e:
            logger.error(f"WebPush error for user {subscription.user_id}: {e}")
            # Expired or unknown subscription
            if e.response is not None and e.response.status_code in [404, 410]:
                subscription.is_active = False
                await subscription.save()
                logger.info(f"Marked subscription as inactive due to {e.response.status_code}")
            return False

    @staticmethod
    async def send_to_user(
        user_id: str,
        title: str,
        body: str,
        data: Optional[dict] = None
    ) -> int:
        """
        Send a push notification to every active subscription of a user.

        Returns:
            int: Number of subscriptions reached
        """
        subscriptions = await PushSubscription.find(
            PushSubscription.user_id == user_id,
            PushSubscription.is_active == True
        ).to_list()

        if not subscriptions:
            logger.debug(f"No active push subscription found for user {user_id}")
            return 0

        success_count = 0
        for subscription in subscriptions:
            if await PushNotificationService.send_push_notification(subscription, title, body, data):
                success_count += 1

        logger.info(f"Sent push notifications to {success_count}/{len(subscriptions)} subscriptions for user {user_id}")
        return success_count
