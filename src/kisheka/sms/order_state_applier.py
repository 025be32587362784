"""Order State Applier — turns a parsed reply into an order transition.

Only orders awaiting a supplier response (order_sent, order_modified) move.
Every call returns a TransitionResult carrying the single reply SMS and the
best-effort follow-ups to run after the primary write; only a failed accept
transaction raises (TransactionFailedError, from the mutation port).

Transitions:
    accept  -> order_accepted   (unit-cost guard, atomic ledger commit)
    reject  -> order_rejected   (retryability assessment)
    modify  -> order_modified   (merged deltas, pending owner/PM review)
    partial -> order_accepted | order_rejected | order_partially_responded
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from kisheka.domain.enums import (
    AWAITING_RESPONSE_STATUSES,
    AuditAction,
    CommandAction,
    FinancialStatus,
    Language,
    PurchaseOrderStatus,
    TransitionOutcome,
)
from kisheka.domain.rejection_reasons import (
    RetryabilityAssessment,
    assess_retryability,
    format_rejection_reason,
    get_priority_value,
)

from . import templates
from .contracts import (
    FollowUp,
    MaterialLine,
    ModificationDetails,
    ParsedCommand,
    PurchaseOrderRef,
    SupplierRef,
    TransitionResult,
)
from .ports import AuditPort, FinancialEffectsPort, NotificationPort, OrderMutationPort

logger = logging.getLogger(__name__)

ENTITY_TYPE = "PURCHASE_ORDER"
RESPONSE_METHOD = "sms"

PAST_TENSE = {
    CommandAction.ACCEPT: "accepted",
    CommandAction.REJECT: "rejected",
    CommandAction.MODIFY: "modified",
}


def language_for(supplier: Optional[SupplierRef]) -> Language:
    return supplier.language_preference if supplier else Language.EN


def commitment_amount(order: PurchaseOrderRef) -> float:
    """Amount added to the project's committed cost when the order is accepted."""
    if order.total_cost:
        return float(order.total_cost)
    if order.is_bulk_order:
        total = 0.0
        for line in order.materials:
            if line.total_cost is not None:
                total += line.total_cost
            elif line.quantity is not None and line.unit_cost is not None:
                total += line.quantity * line.unit_cost
        return total
    if order.quantity_ordered is not None and order.unit_cost is not None:
        return order.quantity_ordered * order.unit_cost
    return 0.0


class OrderStateApplier:
    """Apply accept / reject / modify / partial commands to a resolved order."""

    def __init__(
        self,
        mutation: OrderMutationPort,
        audit: AuditPort,
        notifier: NotificationPort,
        finance: FinancialEffectsPort,
        auto_create_material: bool = False,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.mutation = mutation
        self.audit = audit
        self.notifier = notifier
        self.finance = finance
        self.auto_create_material = auto_create_material
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def apply(
        self,
        order: PurchaseOrderRef,
        command: ParsedCommand,
        raw_text: str,
        supplier: Optional[SupplierRef] = None,
    ) -> TransitionResult:
        language = language_for(supplier)

        if order.status not in AWAITING_RESPONSE_STATUSES:
            logger.info(
                "Ignoring %s for %s: status is %s",
                command.action.value, order.purchase_order_number, order.status.value,
            )
            return self._already_responded(order, language)

        if command.action == CommandAction.ACCEPT:
            return await self._accept(order, raw_text, supplier, language)
        if command.action == CommandAction.REJECT:
            return await self._reject(order, command, raw_text, supplier, language)
        if command.action == CommandAction.MODIFY:
            return await self._modify(order, command, raw_text, supplier, language)
        if command.action == CommandAction.PARTIAL:
            return await self._partial(order, command, raw_text, supplier, language)
        if command.action == CommandAction.HELP:
            return self.help(supplier)
        return self.unknown(supplier)

    def help(self, supplier: Optional[SupplierRef] = None) -> TransitionResult:
        return TransitionResult(
            outcome=TransitionOutcome.NOT_APPLICABLE,
            reply=templates.render("help", language_for(supplier)),
            reason="help",
        )

    def unknown(self, supplier: Optional[SupplierRef] = None) -> TransitionResult:
        return TransitionResult(
            outcome=TransitionOutcome.NOT_APPLICABLE,
            reply=templates.render("not_recognized", language_for(supplier)),
            reason="invalid_command",
        )

    # ------------------------------------------------------------------
    # Accept
    # ------------------------------------------------------------------

    def check_accept_guard(self, order: PurchaseOrderRef, language: Language) -> Optional[TransitionResult]:
        """Unit-cost guard. Returns a guard failure, or None when the order may be accepted."""
        if not order.is_bulk_order:
            if order.unit_cost is None or order.unit_cost <= 0:
                return TransitionResult(
                    outcome=TransitionOutcome.GUARD_FAILED,
                    order_id=order.id,
                    reply=templates.render("missing_unit_cost", language, po_number=order.purchase_order_number),
                    reason=(
                        "Cannot accept purchase order: Unit cost is missing or zero. "
                        "Contact the supplier to provide the unit cost."
                    ),
                )
            return None

        if not order.materials:
            return TransitionResult(
                outcome=TransitionOutcome.GUARD_FAILED,
                order_id=order.id,
                reply=templates.render("bulk_without_materials", language),
                reason="Cannot accept bulk purchase order: Materials array is missing or empty.",
            )

        invalid = [line.label for line in order.materials if not _has_unit_cost(line)]
        if invalid:
            shown = ", ".join(invalid[:3]) + ("..." if len(invalid) > 3 else "")
            return TransitionResult(
                outcome=TransitionOutcome.GUARD_FAILED,
                order_id=order.id,
                reply=templates.render(
                    "missing_bulk_unit_costs", language,
                    po_number=order.purchase_order_number, count=len(invalid), materials=shown,
                ),
                reason=(
                    f"Cannot accept bulk purchase order: {len(invalid)} material(s) have missing "
                    f"or zero unit costs. Materials: {', '.join(invalid)}."
                ),
                details={"materials_without_unit_cost": invalid},
            )
        return None

    async def _accept(self, order, raw_text, supplier, language) -> TransitionResult:
        guard = self.check_accept_guard(order, language)
        if guard is not None:
            logger.warning("Accept blocked for %s: %s", order.purchase_order_number, guard.reason)
            return guard

        now = self.clock()
        fields = self._response_fields("accept", now, f"Accepted via SMS: {raw_text}")
        fields.update(self._commit_fields(now))
        fields["status"] = PurchaseOrderStatus.ORDER_ACCEPTED.value

        amount = commitment_amount(order)
        applied = await self.mutation.apply_accept_transaction(
            order.id,
            fields,
            order.project_id,
            amount,
            self._audit_changes(order, fields),
            AuditAction.AUTO_CONFIRMED,
        )
        if not applied:
            return self._already_responded(order, language)

        supplier_name = self._supplier_name(order, supplier)
        follow_ups = self._accept_follow_ups(order)
        follow_ups.append(self._push(
            order, "Purchase Order Confirmed",
            f"{supplier_name} confirmed PO {order.purchase_order_number} via SMS",
        ))

        return TransitionResult(
            outcome=TransitionOutcome.APPLIED,
            order_id=order.id,
            new_status=PurchaseOrderStatus.ORDER_ACCEPTED,
            reply=templates.confirmation(
                CommandAction.ACCEPT, order.purchase_order_number, language, order.delivery_date,
            ),
            details={"committed_amount": amount},
            follow_ups=follow_ups,
        )

    # ------------------------------------------------------------------
    # Reject
    # ------------------------------------------------------------------

    async def _reject(self, order, command, raw_text, supplier, language) -> TransitionResult:
        now = self.clock()
        reason = command.rejection_reason
        subcategory = command.rejection_subcategory

        if reason:
            assessment = assess_retryability(reason, subcategory)
            formatted = format_rejection_reason(reason, subcategory)
        else:
            assessment = RetryabilityAssessment(retryable=False, recommendation="Manual review required")
            formatted = "No reason specified"

        fields = self._response_fields("reject", now, f"Rejected via SMS: {raw_text}")
        fields.update({
            "status": PurchaseOrderStatus.ORDER_REJECTED.value,
            "rejection_reason": reason,
            "rejection_subcategory": subcategory,
            "is_retryable": assessment.retryable,
            "retry_recommendation": assessment.recommendation,
            "rejection_metadata": {
                "assessed_at": now.isoformat(),
                "reason_category": reason,
                "subcategory": subcategory,
                "priority": assessment.priority.value if assessment.priority else None,
                "priority_value": get_priority_value(assessment.priority),
                "confidence": command.confidence or assessment.confidence or 0.5,
                "formatted_reason": formatted,
                "response_method": RESPONSE_METHOD,
                "parsed_from_text": True,
                "original_text": raw_text,
            },
        })
        if assessment.retryable:
            fields["needs_reassignment"] = True
            fields["reassignment_suggested_at"] = now

        applied = await self.mutation.apply_transition(order.id, PurchaseOrderStatus.ORDER_REJECTED, fields)
        if not applied:
            return self._already_responded(order, language)

        await self._record_audit(order, AuditAction.AUTO_REJECTED, {
            **self._audit_changes(order, fields),
            "rejection_reason": reason,
            "rejection_subcategory": subcategory,
            "is_retryable": assessment.retryable,
        })

        retry_info = (
            f" (Retryable: {assessment.recommendation})" if assessment.retryable else " (Not retryable)"
        )
        push = self._push(
            order, "Purchase Order Rejected",
            f"{self._supplier_name(order, supplier)} rejected PO {order.purchase_order_number} "
            f"via SMS. Reason: {formatted}{retry_info}",
            extra={
                "rejection_reason": reason,
                "rejection_subcategory": subcategory,
                "is_retryable": assessment.retryable,
                "retry_recommendation": assessment.recommendation,
            },
        )

        return TransitionResult(
            outcome=TransitionOutcome.APPLIED,
            order_id=order.id,
            new_status=PurchaseOrderStatus.ORDER_REJECTED,
            reply=templates.confirmation(CommandAction.REJECT, order.purchase_order_number, language),
            details={
                "rejection_reason": reason,
                "rejection_subcategory": subcategory,
                "is_retryable": assessment.retryable,
                "retry_recommendation": assessment.recommendation,
            },
            follow_ups=[push],
        )

    # ------------------------------------------------------------------
    # Modify
    # ------------------------------------------------------------------

    async def _modify(self, order, command, raw_text, supplier, language) -> TransitionResult:
        now = self.clock()
        details = command.modification_details or ModificationDetails()
        changes = details.to_dict()

        unit_cost = details.unit_cost if details.unit_cost is not None else order.unit_cost
        quantity = details.quantity if details.quantity is not None else order.quantity_ordered
        if unit_cost is not None and quantity is not None:
            total_cost = quantity * unit_cost
        else:
            total_cost = order.total_cost

        fields = self._response_fields("modify", now, f"Modification requested via SMS: {raw_text}")
        fields.update({
            "status": PurchaseOrderStatus.ORDER_MODIFIED.value,
            "supplier_modifications": changes if details.has_changes() else None,
            "modification_approved": False,
            "unit_cost": unit_cost,
            "quantity_ordered": quantity,
            "total_cost": total_cost,
        })
        if details.delivery_date is not None:
            fields["delivery_date"] = details.delivery_date

        applied = await self.mutation.apply_transition(order.id, PurchaseOrderStatus.ORDER_MODIFIED, fields)
        if not applied:
            return self._already_responded(order, language)

        await self._record_audit(order, AuditAction.AUTO_MODIFIED, {
            **self._audit_changes(order, fields),
            "modifications": changes,
        })

        summary = []
        if details.unit_cost is not None:
            summary.append(f"Price: KES {templates.format_amount(details.unit_cost)}")
        if details.quantity is not None:
            summary.append(f"Quantity: {templates.format_amount(details.quantity)}")
        if details.delivery_date is not None:
            summary.append(f"Delivery: {templates.format_date(details.delivery_date)}")
        push = self._push(
            order, "Purchase Order Modification Request",
            f"{self._supplier_name(order, supplier)} requested modifications to PO "
            f"{order.purchase_order_number} via SMS" + (f": {', '.join(summary)}" if summary else ""),
        )

        return TransitionResult(
            outcome=TransitionOutcome.APPLIED,
            order_id=order.id,
            new_status=PurchaseOrderStatus.ORDER_MODIFIED,
            reply=templates.modification_received(order.purchase_order_number, language, changes),
            details={"modifications": changes, "total_cost": total_cost},
            follow_ups=[push],
        )

    # ------------------------------------------------------------------
    # Partial (bulk orders)
    # ------------------------------------------------------------------

    async def _partial(self, order, command, raw_text, supplier, language) -> TransitionResult:
        if not (order.is_bulk_order and order.supports_partial_response):
            whole_order = _whole_order_action(command)
            if whole_order is not None:
                # "ACCEPT ALL" on an order that is answered as a whole
                return await self.apply(order, _as_whole_order(command, whole_order), raw_text, supplier)
            return self._not_processed(order, "partial_not_supported", language)

        if not order.materials:
            return self._not_processed(order, "bulk_without_materials", language)

        line_actions = expand_material_responses(command, len(order.materials))
        if not line_actions:
            return self._not_processed(order, "partial_not_processable", language)

        now = self.clock()
        responses = []
        for index in sorted(line_actions):
            action, note = line_actions[index]
            line = order.materials[index]
            is_reject = action == CommandAction.REJECT
            responses.append({
                "line": index + 1,
                "material_request_id": line.material_request_id,
                "material_name": line.material_name,
                "action": action.value,
                "status": action.value,
                "notes": note,
                "rejection_reason": "other" if is_reject else None,
                "rejection_subcategory": "not_specified" if is_reject else None,
                "responded_at": now.isoformat(),
            })

        accepted = sum(1 for r in responses if r["action"] == CommandAction.ACCEPT.value)
        rejected = sum(1 for r in responses if r["action"] == CommandAction.REJECT.value)
        modified = sum(1 for r in responses if r["action"] == CommandAction.MODIFY.value)

        if rejected == 0 and modified == 0:
            new_status = PurchaseOrderStatus.ORDER_ACCEPTED
        elif accepted == 0 and modified == 0:
            new_status = PurchaseOrderStatus.ORDER_REJECTED
        else:
            new_status = PurchaseOrderStatus.ORDER_PARTIALLY_RESPONDED

        fields = self._response_fields("partial", now, f"Partial response via SMS: {raw_text}")
        fields["status"] = new_status.value
        fields["material_responses"] = responses

        follow_ups: list[FollowUp] = []
        if new_status == PurchaseOrderStatus.ORDER_ACCEPTED:
            guard = self.check_accept_guard(order, language)
            if guard is not None:
                logger.warning("Partial accept blocked for %s: %s", order.purchase_order_number, guard.reason)
                return guard
            fields.update(self._commit_fields(now))
            applied = await self.mutation.apply_accept_transaction(
                order.id,
                fields,
                order.project_id,
                commitment_amount(order),
                {**self._audit_changes(order, fields), "material_responses": responses},
                AuditAction.AUTO_PARTIAL_RESPONSE,
            )
            if applied:
                follow_ups.extend(self._accept_follow_ups(order))
        else:
            applied = await self.mutation.apply_transition(order.id, new_status, fields)
            if applied:
                await self._record_audit(order, AuditAction.AUTO_PARTIAL_RESPONSE, {
                    **self._audit_changes(order, fields),
                    "material_responses": responses,
                })

        if not applied:
            return self._already_responded(order, language)

        english_summary = templates.count_summary(Language.EN, accepted, rejected, modified)
        follow_ups.append(self._push(
            order, "Purchase Order Partial Response",
            f"{self._supplier_name(order, supplier)} responded to PO "
            f"{order.purchase_order_number} via SMS: {english_summary}",
        ))

        return TransitionResult(
            outcome=TransitionOutcome.APPLIED,
            order_id=order.id,
            new_status=new_status,
            reply=templates.render(
                "partial_received", language,
                po_number=order.purchase_order_number,
                summary=templates.count_summary(language, accepted, rejected, modified),
            ),
            details={
                "is_partial_response": True,
                "accepted_count": accepted,
                "rejected_count": rejected,
                "modified_count": modified,
            },
            follow_ups=follow_ups,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _already_responded(self, order: PurchaseOrderRef, language: Language) -> TransitionResult:
        return TransitionResult(
            outcome=TransitionOutcome.NOT_APPLICABLE,
            order_id=order.id,
            reply=templates.render("already_responded", language, po_number=order.purchase_order_number),
            reason="already_responded",
        )

    def _not_processed(self, order: PurchaseOrderRef, key: str, language: Language) -> TransitionResult:
        return TransitionResult(
            outcome=TransitionOutcome.NOT_APPLICABLE,
            order_id=order.id,
            reply=templates.render(key, language),
            reason=key,
        )

    @staticmethod
    def _response_fields(response: str, now: datetime, notes: str) -> dict:
        return {
            "supplier_response": response,
            "supplier_response_date": now,
            "auto_confirmed": True,
            "auto_confirmed_at": now,
            "auto_confirmation_method": RESPONSE_METHOD,
            "supplier_notes": notes,
        }

    @staticmethod
    def _commit_fields(now: datetime) -> dict:
        return {
            "financial_status": FinancialStatus.COMMITTED.value,
            "committed_at": now,
        }

    @staticmethod
    def _audit_changes(order: PurchaseOrderRef, fields: dict) -> dict:
        after = dict(order.to_audit_dict())
        for key, value in fields.items():
            after[key] = value.isoformat() if hasattr(value, "isoformat") else value
        return {
            "before": order.to_audit_dict(),
            "after": after,
            "confirmation_method": RESPONSE_METHOD,
        }

    async def _record_audit(self, order: PurchaseOrderRef, action: AuditAction, changes: dict) -> None:
        # The transition is already committed; a lost audit row must not undo it.
        try:
            await self.audit.record(action, ENTITY_TYPE, order.id, order.project_id, changes)
        except Exception as e:
            logger.error("Audit log failed for %s (%s): %s", order.purchase_order_number, action.value, e)

    @staticmethod
    def _supplier_name(order: PurchaseOrderRef, supplier: Optional[SupplierRef]) -> str:
        return order.supplier_name or (supplier.name if supplier else None) or "Supplier"

    def _push(self, order: PurchaseOrderRef, title: str, message: str, extra: Optional[dict] = None) -> FollowUp:
        data = {"url": f"/purchase-orders/{order.id}", "purchase_order_id": order.id}
        if extra:
            data.update(extra)

        async def run():
            if not order.created_by:
                logger.info("No creator on %s; skipping push", order.purchase_order_number)
                return False
            return await self.notifier.send_push_to_user(order.created_by, title, message, data)

        return FollowUp(name="notify_creator", run=run)

    def _accept_follow_ups(self, order: PurchaseOrderRef) -> list[FollowUp]:
        follow_ups = []
        if order.phase_id:
            follow_ups.append(FollowUp(
                name="phase_committed_cost",
                run=lambda: self.finance.refresh_phase_committed_cost(order),
            ))
        follow_ups.append(FollowUp(
            name="project_finances",
            run=lambda: self.finance.recalculate_project_finances(order.project_id),
        ))
        if self.auto_create_material:
            follow_ups.append(FollowUp(
                name="auto_create_material",
                run=lambda: self.finance.create_materials_for_order(order),
            ))
        return follow_ups


def expand_material_responses(command: ParsedCommand, line_count: int) -> dict[int, tuple[CommandAction, str]]:
    """Map 0-based line index -> (action, note). Later segments win; out-of-range indices are dropped."""
    line_actions: dict[int, tuple[CommandAction, str]] = {}
    for response in command.material_responses:
        past = PAST_TENSE.get(response.action, response.action.value)
        if response.target_indices == "all":
            for index in range(line_count):
                line_actions[index] = (response.action, f"All materials {past} via SMS")
            continue
        for position in response.target_indices:
            if 1 <= position <= line_count:
                line_actions[position - 1] = (response.action, f"Material {position} {past} via SMS")
    return line_actions


async def dispatch_follow_ups(follow_ups: list[FollowUp]) -> dict[str, bool]:
    """Run each follow-up independently; failures are logged, never raised.

    A follow-up that returns ``False`` (a push that was not delivered) is
    reported as failed.
    """
    outcomes: dict[str, bool] = {}
    for follow_up in follow_ups:
        try:
            result = await follow_up.run()
            outcomes[follow_up.name] = result is not False
        except Exception as e:
            logger.error("Follow-up %s failed: %s", follow_up.name, e)
            outcomes[follow_up.name] = False
    return outcomes


def _has_unit_cost(line: MaterialLine) -> bool:
    try:
        return line.unit_cost is not None and float(line.unit_cost) > 0
    except (TypeError, ValueError):
        return False


def _whole_order_action(command: ParsedCommand) -> Optional[CommandAction]:
    """The single accept/reject action when every segment targets ALL lines."""
    actions = {response.action for response in command.material_responses}
    if len(actions) != 1:
        return None
    if any(response.target_indices != "all" for response in command.material_responses):
        return None
    action = actions.pop()
    return action if action in (CommandAction.ACCEPT, CommandAction.REJECT) else None


def _as_whole_order(command: ParsedCommand, action: CommandAction) -> ParsedCommand:
    whole = ParsedCommand(
        action=action,
        order_reference=command.order_reference,
        is_short_code=command.is_short_code,
        confidence=command.confidence,
        original_text=command.original_text,
    )
    if action == CommandAction.REJECT:
        whole.rejection_reason = "other"
        whole.rejection_subcategory = "not_specified"
        whole.confidence = 0.3
    return whole
