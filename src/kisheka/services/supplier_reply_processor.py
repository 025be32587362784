"""Supplier Reply Processor — one inbound SMS in, one reply SMS out.

Flow:
    parse -> (help | unknown) reply
          -> resolve -> failure reply
                     -> apply transition -> reply -> follow-ups

The only exception that escapes is TransactionFailedError from a failed
accept; the reply SMS is not sent in that case.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from kisheka.app.config import get_settings
from kisheka.domain.enums import CommandAction, ResolutionFailureReason, TransitionOutcome
from kisheka.services.audit_service import AuditService
from kisheka.services.financial_service import FinancialEffects
from kisheka.services.notification_service import NotificationService
from kisheka.services.order_repository import SqlOrderRepository
from kisheka.services.sms_service import SMSService
from kisheka.sms import templates
from kisheka.sms.command_parser import parse_command
from kisheka.sms.contracts import InboundMessage, ProcessingResult, ResolutionResult
from kisheka.sms.order_resolver import OrderResolver
from kisheka.sms.order_state_applier import OrderStateApplier, dispatch_follow_ups, language_for
from kisheka.sms.ports import NotificationPort

logger = logging.getLogger(__name__)

RESOLUTION_REPLIES = {
    ResolutionFailureReason.NO_SUPPLIER_MATCH: "no_pending_order",
    ResolutionFailureReason.NO_PENDING_ORDER: "no_pending_order",
    ResolutionFailureReason.ORDER_NOT_FOUND: "po_not_found",
    ResolutionFailureReason.TOKEN_EXPIRED: "token_expired",
}

RESOLUTION_MESSAGES = {
    ResolutionFailureReason.NO_SUPPLIER_MATCH: "Supplier not found for phone number",
    ResolutionFailureReason.NO_PENDING_ORDER: "No pending purchase order found",
    ResolutionFailureReason.ORDER_NOT_FOUND: "Purchase order not found",
    ResolutionFailureReason.TOKEN_EXPIRED: "Response token has expired",
}

APPLIED_MESSAGES = {
    CommandAction.ACCEPT: "Purchase order accepted",
    CommandAction.REJECT: "Purchase order rejected",
    CommandAction.MODIFY: "Modification request recorded",
    CommandAction.PARTIAL: "Partial response recorded",
}


class SupplierReplyProcessor:
    """Runs the parse / resolve / apply pipeline for one inbound message."""

    def __init__(
        self,
        resolver: OrderResolver,
        applier: OrderStateApplier,
        notifier: NotificationPort,
    ):
        self.resolver = resolver
        self.applier = applier
        self.notifier = notifier

    async def handle(self, message: InboundMessage) -> ProcessingResult:
        logger.info("Inbound supplier SMS from %s: %s", message.sender, message.raw_text[:100])
        command = parse_command(message.raw_text)

        if not command.needs_order:
            supplier = await self.resolver.find_supplier(message.sender)
            if command.action == CommandAction.HELP:
                transition = self.applier.help(supplier)
                text = "Help message sent"
            else:
                transition = self.applier.unknown(supplier)
                text = "Command not recognized"
            reply_sent = await self._reply(message.sender, transition.reply)
            return ProcessingResult(
                processed=False,
                message=text,
                action=command.action,
                reason=transition.reason,
                reply_sent=reply_sent,
            )

        resolution = await self.resolver.resolve(message.sender, command)
        if not resolution.ok:
            return await self._resolution_failed(message, command.action, command.order_reference, resolution)

        order = resolution.order
        transition = await self.applier.apply(order, command, message.raw_text, resolution.supplier)
        reply_sent = await self._reply(message.sender, transition.reply)
        outcomes = await dispatch_follow_ups(transition.follow_ups)

        details = dict(transition.details)
        if transition.new_status is not None:
            details["status"] = transition.new_status.value
        if resolution.advisories:
            details["advisories"] = [advisory.value for advisory in resolution.advisories]
            details["pending_count"] = resolution.pending_count
        if outcomes:
            details["follow_ups"] = outcomes

        if transition.outcome == TransitionOutcome.GUARD_FAILED:
            message_text = transition.reason or "Cannot accept purchase order"
        elif transition.processed:
            message_text = APPLIED_MESSAGES.get(command.action, "Response processed")
        else:
            message_text = f"Purchase order {order.purchase_order_number} not updated"

        logger.info(
            "SMS %s for %s: outcome=%s reason=%s",
            command.action.value, order.purchase_order_number, transition.outcome.value, transition.reason,
        )
        return ProcessingResult(
            processed=transition.processed,
            message=message_text,
            action=command.action,
            reason=transition.reason,
            purchase_order_id=order.id,
            guard_failed=transition.outcome == TransitionOutcome.GUARD_FAILED,
            reply_sent=reply_sent,
            details=details,
        )

    async def _resolution_failed(
        self,
        message: InboundMessage,
        action: CommandAction,
        reference: Optional[str],
        resolution: ResolutionResult,
    ) -> ProcessingResult:
        failure = resolution.failure
        reply = templates.render(
            RESOLUTION_REPLIES[failure],
            language_for(resolution.supplier),
            reference=f" {reference}" if reference else "",
        )
        reply_sent = await self._reply(message.sender, reply)
        logger.info("Could not resolve order for %s: %s", message.sender, failure.value)
        return ProcessingResult(
            processed=False,
            message=RESOLUTION_MESSAGES[failure],
            action=action,
            reason=failure.value,
            purchase_order_id=resolution.order.id if resolution.order else None,
            reply_sent=reply_sent,
        )

    async def _reply(self, to: str, text: str) -> bool:
        try:
            return bool(await self.notifier.send_sms(to, text))
        except Exception as e:
            logger.error("Reply SMS to %s failed: %s", to, e)
            return False


def build_reply_processor(db: AsyncSession, sms_service: Optional[SMSService] = None) -> SupplierReplyProcessor:
    """Wire the processor to the SQLAlchemy session and the SMS gateway."""
    settings = get_settings()
    repository = SqlOrderRepository(db)
    notifier = NotificationService(db, sms_service)
    applier = OrderStateApplier(
        mutation=repository,
        audit=AuditService(db),
        notifier=notifier,
        finance=FinancialEffects(db),
        auto_create_material=settings.auto_create_material_on_confirm,
    )
    return SupplierReplyProcessor(OrderResolver(repository), applier, notifier)
