"""Notification service — supplier SMS replies and in-app pushes to PM/owners.

Implements the NotificationPort. Both channels are best-effort: failures are
logged and reported as False, never raised.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from kisheka.domain.models import Notification, User
from kisheka.services.sms_service import SMSService

logger = logging.getLogger(__name__)


class NotificationService:
    """Outbound SMS via SMSService, push via the notifications inbox."""

    def __init__(self, db: AsyncSession, sms_service: Optional[SMSService] = None):
        self.db = db
        self.sms_service = sms_service or SMSService()

    async def send_sms(self, to: str, message: str) -> bool:
        try:
            result = await self.sms_service.send_sms(to, message)
        except Exception as e:
            logger.error("SMS to %s failed: %s", to, e)
            return False
        if not result.get("ok"):
            logger.warning("SMS to %s not sent: %s", to, result.get("error"))
            return False
        return True

    async def send_push_to_user(
        self,
        user_id: str,
        title: str,
        message: str,
        data: Optional[dict] = None,
    ) -> bool:
        """Store a notification for an active user."""
        try:
            user = await self.db.get(User, user_id)
            if user is None or user.status != "active":
                logger.info("Push skipped: user %s missing or inactive", user_id)
                return False

            self.db.add(Notification(user_id=user_id, title=title, message=message, data=data or {}))
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error("Push to user %s failed: %s", user_id, e)
            return False

        logger.info("Push sent to user %s: %s", user_id, title)
        return True
