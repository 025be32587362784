"""Supplier SMS reply pipeline.

Stages:
1. payloads (deterministic webhook body classification)
2. command_parser (deterministic command extraction)
3. OrderResolver (reply -> one purchase order, via OrderLookupPort)
4. OrderStateApplier (order transition + reply + follow-ups, via mutation/audit/notification ports)
"""

from .contracts import (
    DeliveryStatusReport,
    FollowUp,
    InboundMessage,
    InvalidPayload,
    MaterialLine,
    MaterialResponse,
    ModificationDetails,
    ParsedCommand,
    ProcessingResult,
    PurchaseOrderRef,
    ResolutionResult,
    SupplierRef,
    TransitionResult,
)
from .command_parser import parse_command
from .payloads import classify_payload, decode_body, verify_signature
from .order_resolver import OrderResolver
from .order_state_applier import OrderStateApplier, dispatch_follow_ups

__all__ = [
    "DeliveryStatusReport",
    "FollowUp",
    "InboundMessage",
    "InvalidPayload",
    "MaterialLine",
    "MaterialResponse",
    "ModificationDetails",
    "ParsedCommand",
    "ProcessingResult",
    "PurchaseOrderRef",
    "ResolutionResult",
    "SupplierRef",
    "TransitionResult",
    "parse_command",
    "classify_payload",
    "decode_body",
    "verify_signature",
    "OrderResolver",
    "OrderStateApplier",
    "dispatch_follow_ups",
]
