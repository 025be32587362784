"""Communication service — delivery reports for outbound purchase-order messages."""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from kisheka.domain.models import PurchaseOrderCommunication
from kisheka.sms.contracts import DeliveryStatusReport

logger = logging.getLogger(__name__)


class CommunicationService:
    """Tracks gateway delivery status on PurchaseOrderCommunication rows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record_delivery_status(self, report: DeliveryStatusReport) -> Optional[str]:
        """Apply a delivery report to the matching communication.

        Returns the purchase order id the message belongs to, or None when
        no communication carries the provider message id. Never raises.
        """
        try:
            result = await self.db.execute(
                select(PurchaseOrderCommunication)
                .where(PurchaseOrderCommunication.message_id == report.message_id)
                .limit(1)
            )
            communication = result.scalar_one_or_none()
            if communication is None:
                logger.info("No communication found for message %s (%s)", report.message_id, report.status)
                return None

            status = (report.status or "").lower()
            communication.status = status
            communication.delivery_status = report.status
            communication.delivery_reported_at = datetime.now(timezone.utc)
            if report.failure_reason:
                communication.failure_reason = report.failure_reason
            if report.network_code:
                communication.network_code = report.network_code
            if report.retry_count is not None:
                communication.retry_count = report.retry_count
            purchase_order_id = communication.purchase_order_id
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error("Failed to record delivery status for message %s: %s", report.message_id, e)
            return None

        logger.info("Delivery status for message %s: %s", report.message_id, status)
        return purchase_order_id
