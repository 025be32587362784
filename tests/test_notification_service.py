"""Tests for NotificationService (supplier SMS and in-app pushes)."""

from unittest.mock import AsyncMock, MagicMock

from sqlalchemy import select

from kisheka.domain.models import Notification
from kisheka.services.notification_service import NotificationService


class TestSendSMS:
    async def test_delivered(self, db_session, sms_service_mock):
        service = NotificationService(db_session, sms_service=sms_service_mock)

        assert await service.send_sms("+254712345678", "hello") is True
        assert sms_service_mock.sent == [("+254712345678", "hello")]

    async def test_gateway_refusal_is_false(self, db_session):
        gateway = MagicMock()
        gateway.send_sms = AsyncMock(return_value={"ok": False, "error": "sms_disabled"})

        assert await NotificationService(db_session, sms_service=gateway).send_sms("+254712345678", "x") is False

    async def test_gateway_exception_is_false(self, db_session):
        gateway = MagicMock()
        gateway.send_sms = AsyncMock(side_effect=RuntimeError("boom"))

        assert await NotificationService(db_session, sms_service=gateway).send_sms("+254712345678", "x") is False


class TestPush:
    async def test_active_user_gets_notification(self, db_session, make_user, sms_service_mock):
        user = await make_user()
        service = NotificationService(db_session, sms_service=sms_service_mock)

        sent = await service.send_push_to_user(
            user.id, "Purchase Order Confirmed", "PO-001 accepted", {"purchase_order_id": "po-1"},
        )

        assert sent is True
        stored = (await db_session.execute(select(Notification))).scalar_one()
        assert stored.user_id == user.id
        assert stored.data == {"purchase_order_id": "po-1"}
        assert stored.is_read is False

    async def test_inactive_user_skipped(self, db_session, make_user, sms_service_mock):
        user = await make_user(status="suspended")
        service = NotificationService(db_session, sms_service=sms_service_mock)

        assert await service.send_push_to_user(user.id, "t", "m") is False
        assert (await db_session.execute(select(Notification))).first() is None

    async def test_unknown_user_skipped(self, db_session, sms_service_mock):
        service = NotificationService(db_session, sms_service=sms_service_mock)
        assert await service.send_push_to_user("nobody", "t", "m") is False
