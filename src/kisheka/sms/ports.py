"""Collaborator interfaces the reply pipeline depends on.

The resolver and state applier only ever talk to these protocols; the
SQLAlchemy repository, the SMS gateway client and the audit writer
implement them, and tests substitute in-memory fakes.
"""

from typing import Any, Optional, Protocol

from kisheka.domain.enums import AuditAction, PurchaseOrderStatus

from .contracts import PurchaseOrderRef, SupplierRef


class OrderLookupPort(Protocol):
    async def find_by_reference(self, reference: str) -> Optional[PurchaseOrderRef]:
        ...

    async def find_active_supplier_by_phone(self, phone_variants: list[str]) -> Optional[SupplierRef]:
        ...

    async def find_supplier_by_id(self, supplier_id: str) -> Optional[SupplierRef]:
        ...

    async def find_most_recent_awaiting_order(self, supplier_id: str) -> Optional[PurchaseOrderRef]:
        ...

    async def count_awaiting_orders(self, supplier_id: str) -> int:
        ...


class OrderMutationPort(Protocol):
    async def apply_transition(
        self,
        order_id: str,
        new_status: PurchaseOrderStatus,
        fields: dict[str, Any],
    ) -> bool:
        """Move an awaiting-response order to ``new_status``.

        Returns False when the order was no longer awaiting a response.
        """
        ...

    async def apply_accept_transaction(
        self,
        order_id: str,
        fields: dict[str, Any],
        project_id: str,
        amount: float,
        audit_changes: dict[str, Any],
        audit_action: AuditAction = AuditAction.AUTO_CONFIRMED,
    ) -> bool:
        """Status update, committed-cost increment and audit row in one transaction.

        Returns False when the order was no longer awaiting a response.
        Raises TransactionFailedError if any step fails; nothing is kept.
        """
        ...


class NotificationPort(Protocol):
    async def send_sms(self, to: str, message: str) -> bool:
        ...

    async def send_push_to_user(
        self,
        user_id: str,
        title: str,
        message: str,
        data: Optional[dict] = None,
    ) -> bool:
        ...


class AuditPort(Protocol):
    async def record(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: str,
        project_id: Optional[str],
        changes: dict[str, Any],
    ) -> None:
        ...


class FinancialEffectsPort(Protocol):
    """Post-commit effects of an accepted order. Each call is best-effort."""

    async def refresh_phase_committed_cost(self, order: PurchaseOrderRef) -> None:
        ...

    async def recalculate_project_finances(self, project_id: str) -> None:
        ...

    async def create_materials_for_order(self, order: PurchaseOrderRef) -> list[str]:
        ...
