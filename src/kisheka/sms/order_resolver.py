"""Order Resolver — matches an inbound reply to exactly one purchase order.

Explicit references (``PO-001``) are looked up directly. Short-code replies
("ACCEPT" with no reference) go through the sender's phone number to the
supplier's most recently created order that is still awaiting a response.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from kisheka.domain.enums import ResolutionAdvisory, ResolutionFailureReason

from .command_parser import normalize_order_reference
from .contracts import ParsedCommand, ResolutionResult, SupplierRef
from .ports import OrderLookupPort

logger = logging.getLogger(__name__)


def phone_variants(sender: str) -> list[str]:
    """The formats a supplier phone may be stored in: as sent, without and with ``+``."""
    raw = (sender or "").strip()
    if not raw:
        return []
    stripped = raw.lstrip("+")
    variants: list[str] = []
    for candidate in (raw, stripped, f"+{stripped}"):
        if candidate and candidate not in variants:
            variants.append(candidate)
    return variants


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they are stored as UTC.
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class OrderResolver:
    """Resolve a parsed command to a PurchaseOrderRef through the lookup port."""

    def __init__(
        self,
        lookup: OrderLookupPort,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.lookup = lookup
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def find_supplier(self, sender: str) -> Optional[SupplierRef]:
        """Active supplier for a sender phone, used to localize replies."""
        variants = phone_variants(sender)
        if not variants:
            return None
        return await self.lookup.find_active_supplier_by_phone(variants)

    async def resolve(self, sender: str, parsed: ParsedCommand) -> ResolutionResult:
        reference = normalize_order_reference(parsed.order_reference)
        if reference:
            return await self._resolve_reference(sender, reference)
        return await self._resolve_short_code(sender)

    async def _resolve_reference(self, sender: str, reference: str) -> ResolutionResult:
        order = await self.lookup.find_by_reference(reference)
        if order is None:
            logger.info("No purchase order matches reference %s (sender %s)", reference, sender)
            return ResolutionResult(
                supplier=await self.find_supplier(sender),
                failure=ResolutionFailureReason.ORDER_NOT_FOUND,
            )

        supplier = await self.lookup.find_supplier_by_id(order.supplier_id)
        return self._check_expiry(ResolutionResult(order=order, supplier=supplier))

    async def _resolve_short_code(self, sender: str) -> ResolutionResult:
        supplier = await self.find_supplier(sender)
        if supplier is None:
            logger.info("No active supplier for phone %s", sender)
            return ResolutionResult(failure=ResolutionFailureReason.NO_SUPPLIER_MATCH)

        order = await self.lookup.find_most_recent_awaiting_order(supplier.id)
        if order is None:
            logger.info("Supplier %s has no order awaiting a response", supplier.id)
            return ResolutionResult(
                supplier=supplier,
                failure=ResolutionFailureReason.NO_PENDING_ORDER,
            )

        result = ResolutionResult(order=order, supplier=supplier)
        pending = await self.lookup.count_awaiting_orders(supplier.id)
        result.pending_count = pending
        if pending > 1:
            result.advisories.append(ResolutionAdvisory.AMBIGUOUS_MULTIPLE_PENDING)
            logger.warning(
                "Supplier %s has %d orders awaiting a response; using most recent %s",
                supplier.id, pending, order.purchase_order_number,
            )
        return self._check_expiry(result)

    def _check_expiry(self, result: ResolutionResult) -> ResolutionResult:
        expires_at = result.order.response_token_expires_at
        if expires_at is not None and _as_utc(expires_at) < self.clock():
            logger.info(
                "Response token for %s expired at %s",
                result.order.purchase_order_number, expires_at.isoformat(),
            )
            result.failure = ResolutionFailureReason.TOKEN_EXPIRED
        return result
