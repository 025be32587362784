"""Typed dataclasses for the supplier SMS reply pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Literal, Union

from kisheka.domain.enums import (
    CommandAction,
    Language,
    PurchaseOrderStatus,
    ResolutionAdvisory,
    ResolutionFailureReason,
    TransitionOutcome,
    WebhookPayloadKind,
)


# ---------------------------------------------------------------------------
# Webhook payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InboundMessage:
    """One SMS received from a supplier."""
    kind: Literal[WebhookPayloadKind.INCOMING_SMS]
    sender: str
    raw_text: str
    received_at: datetime
    recipient: str | None = None
    external_message_id: str | None = None


@dataclass(frozen=True)
class DeliveryStatusReport:
    """Gateway callback about an SMS we sent earlier."""
    kind: Literal[WebhookPayloadKind.DELIVERY_STATUS]
    message_id: str
    phone_number: str
    status: str
    failure_reason: str | None = None
    retry_count: int | None = None
    network_code: str | None = None


@dataclass(frozen=True)
class InvalidPayload:
    """Body that is neither an incoming SMS nor a delivery report."""
    kind: Literal[WebhookPayloadKind.INVALID]
    reason: str
    fields: tuple[str, ...] = ()


WebhookPayload = Union[InboundMessage, DeliveryStatusReport, InvalidPayload]


# ---------------------------------------------------------------------------
# Parser output
# ---------------------------------------------------------------------------


@dataclass
class ModificationDetails:
    """Deltas a supplier asked for. None means "no change requested"."""
    unit_cost: float | None = None
    quantity: float | None = None
    delivery_date: date | None = None
    notes: str | None = None

    def has_changes(self) -> bool:
        return any(
            value is not None
            for value in (self.unit_cost, self.quantity, self.delivery_date, self.notes)
        )

    def to_dict(self) -> dict:
        """Only the fields that were actually requested."""
        out: dict[str, Any] = {}
        if self.unit_cost is not None:
            out["unit_cost"] = self.unit_cost
        if self.quantity is not None:
            out["quantity"] = self.quantity
        if self.delivery_date is not None:
            out["delivery_date"] = self.delivery_date.isoformat()
        if self.notes is not None:
            out["notes"] = self.notes
        return out


@dataclass
class MaterialResponse:
    """One segment of a bulk reply, e.g. ``ACCEPT 1,3``."""
    target_indices: Union[Literal["all"], list[int]]
    action: CommandAction


@dataclass
class ParsedCommand:
    """Output of the deterministic command parser."""
    action: CommandAction = CommandAction.UNKNOWN
    order_reference: str | None = None
    is_short_code: bool = False
    rejection_reason: str | None = None
    rejection_subcategory: str | None = None
    confidence: float = 0.0
    modification_details: ModificationDetails | None = None
    material_responses: list[MaterialResponse] = field(default_factory=list)
    original_text: str = ""

    @property
    def needs_order(self) -> bool:
        """Whether the command has to be resolved to a purchase order."""
        return self.action in (
            CommandAction.ACCEPT,
            CommandAction.REJECT,
            CommandAction.MODIFY,
            CommandAction.PARTIAL,
        )


# ---------------------------------------------------------------------------
# Order snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MaterialLine:
    """One line of a bulk purchase order."""
    material_request_id: str | None
    material_name: str
    quantity: float | None = None
    unit: str | None = None
    unit_cost: float | None = None
    total_cost: float | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "MaterialLine":
        return cls(
            material_request_id=data.get("material_request_id"),
            material_name=data.get("material_name") or "Unknown",
            quantity=data.get("quantity"),
            unit=data.get("unit"),
            unit_cost=data.get("unit_cost"),
            total_cost=data.get("total_cost"),
        )

    @property
    def label(self) -> str:
        return self.material_name or self.material_request_id or "Unknown"


@dataclass(frozen=True)
class SupplierRef:
    """Supplier fields needed to address and localize replies."""
    id: str
    name: str
    phone: str | None = None
    language_preference: Language = Language.EN
    sms_enabled: bool = True


@dataclass(frozen=True)
class PurchaseOrderRef:
    """Read-only snapshot of the purchase-order fields the core reasons about."""
    id: str
    purchase_order_number: str
    supplier_id: str
    status: PurchaseOrderStatus
    project_id: str
    supplier_name: str | None = None
    phase_id: str | None = None
    created_by: str | None = None
    is_bulk_order: bool = False
    supports_partial_response: bool = False
    materials: tuple[MaterialLine, ...] = ()
    material_name: str | None = None
    unit: str | None = None
    unit_cost: float | None = None
    quantity_ordered: float | None = None
    total_cost: float = 0.0
    delivery_date: date | None = None
    response_token_expires_at: datetime | None = None
    created_at: datetime | None = None

    def to_audit_dict(self) -> dict:
        """Subset of fields recorded as the "before" side of an audit diff."""
        return {
            "status": self.status.value,
            "unit_cost": self.unit_cost,
            "quantity_ordered": self.quantity_ordered,
            "total_cost": self.total_cost,
            "delivery_date": self.delivery_date.isoformat() if self.delivery_date else None,
        }


# ---------------------------------------------------------------------------
# Resolver output
# ---------------------------------------------------------------------------


@dataclass
class ResolutionResult:
    """A resolved order, or a failure reason.

    ``order`` may still be set alongside ``token_expired`` so the caller can
    report which order was refused.
    """
    order: PurchaseOrderRef | None = None
    supplier: SupplierRef | None = None
    failure: ResolutionFailureReason | None = None
    advisories: list[ResolutionAdvisory] = field(default_factory=list)
    pending_count: int = 0

    @property
    def ok(self) -> bool:
        return self.order is not None and self.failure is None


# ---------------------------------------------------------------------------
# State applier output
# ---------------------------------------------------------------------------


@dataclass
class FollowUp:
    """A best-effort action run after the primary transition has committed."""
    name: str
    run: Callable[[], Awaitable[Any]]


@dataclass
class TransitionResult:
    """Outcome of applying one command to one order."""
    outcome: TransitionOutcome
    reply: str
    order_id: str | None = None
    new_status: PurchaseOrderStatus | None = None
    reason: str | None = None
    details: dict = field(default_factory=dict)
    follow_ups: list[FollowUp] = field(default_factory=list)

    @property
    def processed(self) -> bool:
        return self.outcome == TransitionOutcome.APPLIED


# ---------------------------------------------------------------------------
# Processor output
# ---------------------------------------------------------------------------


@dataclass
class ProcessingResult:
    """What the webhook reports back for one inbound SMS."""
    processed: bool
    message: str
    action: CommandAction | None = None
    reason: str | None = None
    purchase_order_id: str | None = None
    guard_failed: bool = False
    reply_sent: bool = False
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"processed": self.processed}
        if self.action is not None:
            data["action"] = self.action.value
        if self.reason:
            data["reason"] = self.reason
        if self.purchase_order_id:
            data["purchase_order_id"] = self.purchase_order_id
        data.update(self.details)
        return data
