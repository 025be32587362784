"""Domain enumerations for supplier purchase-order responses.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

from enum import Enum


class PurchaseOrderStatus(str, Enum):
    """Lifecycle status of a purchase order."""

    DRAFT = "draft"
    ORDER_SENT = "order_sent"
    ORDER_MODIFIED = "order_modified"
    ORDER_ACCEPTED = "order_accepted"
    ORDER_REJECTED = "order_rejected"
    ORDER_PARTIALLY_RESPONDED = "order_partially_responded"
    READY_FOR_DELIVERY = "ready_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class FinancialStatus(str, Enum):
    """Whether a purchase order's cost is committed against the project."""

    NOT_COMMITTED = "not_committed"
    COMMITTED = "committed"
    FULFILLED = "fulfilled"


class CommandAction(str, Enum):
    """Intent extracted from a supplier SMS reply."""

    ACCEPT = "accept"
    REJECT = "reject"
    MODIFY = "modify"
    PARTIAL = "partial"
    HELP = "help"
    UNKNOWN = "unknown"


class SupplierStatus(str, Enum):
    """Whether a supplier can receive and answer orders."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class Language(str, Enum):
    """Supported SMS reply languages."""

    EN = "en"
    SW = "sw"


class ResolutionFailureReason(str, Enum):
    """Why an inbound reply could not be matched to a purchase order."""

    NO_SUPPLIER_MATCH = "no_supplier_match"
    NO_PENDING_ORDER = "no_pending_order"
    ORDER_NOT_FOUND = "order_not_found"
    TOKEN_EXPIRED = "token_expired"


class ResolutionAdvisory(str, Enum):
    """Non-fatal observations made while resolving an order."""

    AMBIGUOUS_MULTIPLE_PENDING = "ambiguous_multiple_pending"


class TransitionOutcome(str, Enum):
    """Result class of applying a command to an order."""

    APPLIED = "applied"
    NOT_APPLICABLE = "not_applicable"
    GUARD_FAILED = "guard_failed"


class RejectionPriority(str, Enum):
    """Follow-up priority attached to a rejection category."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    VARIABLE = "variable"


class AuditAction(str, Enum):
    """Audit log actions written by the SMS response flow."""

    AUTO_CONFIRMED = "AUTO_CONFIRMED"
    AUTO_REJECTED = "AUTO_REJECTED"
    AUTO_MODIFIED = "AUTO_MODIFIED"
    AUTO_PARTIAL_RESPONSE = "AUTO_PARTIAL_RESPONSE"


class WebhookPayloadKind(str, Enum):
    """Shape of an inbound SMS gateway callback."""

    INCOMING_SMS = "incoming_sms"
    DELIVERY_STATUS = "delivery_status"
    INVALID = "invalid"


# Statuses in which a supplier response is still expected
AWAITING_RESPONSE_STATUSES: frozenset[PurchaseOrderStatus] = frozenset({
    PurchaseOrderStatus.ORDER_SENT,
    PurchaseOrderStatus.ORDER_MODIFIED,
})

# Statuses whose total cost counts as committed spend
COMMITTED_STATUSES: frozenset[PurchaseOrderStatus] = frozenset({
    PurchaseOrderStatus.ORDER_ACCEPTED,
    PurchaseOrderStatus.READY_FOR_DELIVERY,
})
