"""End-to-end tests for the SupplierReplyProcessor over in-memory ports.

Every path must send exactly one reply SMS to the sender.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from kisheka.domain.enums import CommandAction, Language, PurchaseOrderStatus, WebhookPayloadKind
from kisheka.domain.errors import TransactionFailedError
from kisheka.services.supplier_reply_processor import SupplierReplyProcessor
from kisheka.sms.contracts import InboundMessage
from kisheka.sms.order_resolver import OrderResolver
from kisheka.sms.order_state_applier import OrderStateApplier

SENDER = "+254712345678"


@pytest.fixture
def processor(order_store, audit_log, notifier, finance, now):
    resolver = OrderResolver(order_store, clock=lambda: now)
    applier = OrderStateApplier(order_store, audit_log, notifier, finance, clock=lambda: now)
    return SupplierReplyProcessor(resolver, applier, notifier)


def inbound(text: str, sender: str = SENDER) -> InboundMessage:
    return InboundMessage(
        kind=WebhookPayloadKind.INCOMING_SMS,
        sender=sender,
        raw_text=text,
        received_at=datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc),
    )


class TestScenarios:
    async def test_single_accept(self, processor, order_store, notifier, finance, make_order_ref, make_supplier_ref):
        order_store.add_supplier(make_supplier_ref())
        order_store.add_order(make_order_ref("po-2", number="PO-002", unit_cost=150, quantity=10))

        result = await processor.handle(inbound("ACCEPT"))

        assert result.processed is True
        assert result.action == CommandAction.ACCEPT
        assert result.purchase_order_id == "po-2"
        assert order_store.orders["po-2"].status == PurchaseOrderStatus.ORDER_ACCEPTED
        assert order_store.committed["proj-1"] == 1500.0
        assert notifier.sms == [(SENDER, "Thank you! PO-002 ACCEPTED. We'll contact you soon.")]
        assert result.details["follow_ups"] == {
            "phase_committed_cost": True,
            "project_finances": True,
            "notify_creator": True,
        }
        assert notifier.pushes[0]["title"] == "Purchase Order Confirmed"
        assert ("project", "proj-1") in finance.calls

    async def test_price_rejection(self, processor, order_store, notifier, make_order_ref, make_supplier_ref):
        order_store.add_supplier(make_supplier_ref())
        order_store.add_order(make_order_ref("po-3", number="PO-003"))

        result = await processor.handle(inbound("REJECT PO-003 price too high"))

        assert result.processed is True
        assert order_store.orders["po-3"].status == PurchaseOrderStatus.ORDER_REJECTED
        fields = order_store.fields["po-3"]
        assert fields["rejection_reason"] == "price_too_high"
        assert fields["is_retryable"] is True
        assert len(notifier.sms) == 1
        assert "REJECTED" in notifier.sms[0][1]

    async def test_mixed_bulk_response(self, processor, order_store, notifier, make_order_ref, make_supplier_ref):
        order_store.add_supplier(make_supplier_ref())
        order_store.add_order(make_order_ref(
            "po-4", number="PO-004", materials=[(100, 10), (50, 4), (20, 1)], supports_partial_response=True,
        ))

        result = await processor.handle(inbound("ACCEPT 1,3 REJECT 2"))

        assert result.processed is True
        assert result.action == CommandAction.PARTIAL
        assert result.details["status"] == "order_partially_responded"
        responses = order_store.fields["po-4"]["material_responses"]
        assert [r["action"] for r in responses] == ["accept", "reject", "accept"]
        assert len(notifier.sms) == 1
        assert "2 accepted, 1 rejected" in notifier.sms[0][1]

    @pytest.mark.parametrize("text", ["MODIFY 2026-11-20", "MODIFY PO-002 20/11/2026"])
    async def test_date_only_modification(
        self, processor, order_store, notifier, make_order_ref, make_supplier_ref, text,
    ):
        order_store.add_supplier(make_supplier_ref())
        order_store.add_order(make_order_ref("po-2", number="PO-002"))

        result = await processor.handle(inbound(text))

        assert result.processed is True
        assert result.action == CommandAction.MODIFY
        assert order_store.orders["po-2"].status == PurchaseOrderStatus.ORDER_MODIFIED
        assert order_store.fields["po-2"]["delivery_date"] == date(2026, 11, 20)
        assert len(notifier.sms) == 1

    async def test_rejection_with_leading_number(
        self, processor, order_store, notifier, make_order_ref, make_supplier_ref,
    ):
        order_store.add_supplier(make_supplier_ref())
        order_store.add_order(make_order_ref("po-2", number="PO-002"))

        result = await processor.handle(inbound("REJECT 2 weeks delay"))

        assert result.action == CommandAction.REJECT
        assert order_store.orders["po-2"].status == PurchaseOrderStatus.ORDER_REJECTED
        assert order_store.fields["po-2"]["rejection_reason"] == "timeline"
        assert len(notifier.sms) == 1

    async def test_unknown_command(self, processor, order_store, notifier, make_order_ref, make_supplier_ref):
        order_store.add_supplier(make_supplier_ref())
        order_store.add_order(make_order_ref())

        result = await processor.handle(inbound("hello there"))

        assert result.processed is False
        assert result.reason == "invalid_command"
        assert order_store.orders["po-1"].status == PurchaseOrderStatus.ORDER_SENT
        assert len(notifier.sms) == 1
        assert notifier.sms[0][1].startswith("Your response was not recognized")


class TestReplies:
    async def test_help_in_supplier_language(self, processor, order_store, notifier, make_supplier_ref):
        order_store.add_supplier(make_supplier_ref(language=Language.SW))

        result = await processor.handle(inbound("msaada"))

        assert result.action == CommandAction.HELP
        assert result.reply_sent is True
        assert notifier.sms[0][1].startswith("Jibu agizo kwa")

    async def test_unknown_sender_gets_no_pending_reply(self, processor, notifier):
        result = await processor.handle(inbound("ACCEPT", sender="+254700000000"))

        assert result.processed is False
        assert result.reason == "no_supplier_match"
        assert notifier.sms == [("+254700000000", "Sorry, no pending order found. Please include PO number (PO-XXX) or contact us.")]

    async def test_unknown_reference_reply(self, processor, order_store, notifier, make_supplier_ref):
        order_store.add_supplier(make_supplier_ref())

        result = await processor.handle(inbound("ACCEPT PO-404"))

        assert result.reason == "order_not_found"
        assert "purchase order PO-404." in notifier.sms[0][1]

    async def test_expired_token_reply(self, processor, order_store, notifier, make_order_ref, make_supplier_ref):
        order_store.add_supplier(make_supplier_ref())
        order_store.add_order(make_order_ref(expires_in=timedelta(hours=-1)))

        result = await processor.handle(inbound("ACCEPT"))

        assert result.reason == "token_expired"
        assert result.purchase_order_id == "po-1"
        assert order_store.orders["po-1"].status == PurchaseOrderStatus.ORDER_SENT
        assert len(notifier.sms) == 1

    async def test_already_responded(self, processor, order_store, notifier, make_order_ref, make_supplier_ref):
        order_store.add_supplier(make_supplier_ref())
        order_store.add_order(make_order_ref(status=PurchaseOrderStatus.ORDER_ACCEPTED))

        result = await processor.handle(inbound("REJECT PO-001"))

        assert result.processed is False
        assert result.reason == "already_responded"
        assert notifier.sms[0][1].startswith("You have already responded to PO-001")

    async def test_ambiguous_pending_reported(self, processor, order_store, make_order_ref, make_supplier_ref):
        order_store.add_supplier(make_supplier_ref())
        order_store.add_order(make_order_ref("po-a", number="PO-010", age=timedelta(days=2)))
        order_store.add_order(make_order_ref("po-b", number="PO-011", age=timedelta(hours=1)))

        result = await processor.handle(inbound("ACCEPT"))

        assert result.purchase_order_id == "po-b"
        assert result.details["advisories"] == ["ambiguous_multiple_pending"]
        assert result.details["pending_count"] == 2


class TestFailures:
    async def test_guard_failure_flagged(self, processor, order_store, notifier, make_order_ref, make_supplier_ref):
        order_store.add_supplier(make_supplier_ref())
        order_store.add_order(make_order_ref(unit_cost=None))

        result = await processor.handle(inbound("ACCEPT"))

        assert result.guard_failed is True
        assert result.processed is False
        assert result.message.startswith("Cannot accept purchase order")
        assert len(notifier.sms) == 1

    async def test_transaction_failure_propagates_without_reply(
        self, processor, order_store, notifier, make_order_ref, make_supplier_ref,
    ):
        order_store.fail_accept = True
        order_store.add_supplier(make_supplier_ref())
        order_store.add_order(make_order_ref())

        with pytest.raises(TransactionFailedError):
            await processor.handle(inbound("ACCEPT"))

        assert notifier.sms == []

    async def test_reply_failure_does_not_fail_transition(
        self, processor, order_store, notifier, make_order_ref, make_supplier_ref,
    ):
        notifier.fail_sms = True
        order_store.add_supplier(make_supplier_ref())
        order_store.add_order(make_order_ref())

        result = await processor.handle(inbound("ACCEPT"))

        assert result.processed is True
        assert result.reply_sent is False
        assert order_store.orders["po-1"].status == PurchaseOrderStatus.ORDER_ACCEPTED
