"""SQLAlchemy-backed order lookup and mutation for the SMS reply pipeline.

Returns frozen PurchaseOrderRef / SupplierRef snapshots rather than ORM
objects so callers never touch expired attributes after a commit or
rollback.
"""

import logging
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from kisheka.domain.enums import (
    AWAITING_RESPONSE_STATUSES,
    AuditAction,
    Language,
    PurchaseOrderStatus,
    SupplierStatus,
)
from kisheka.domain.errors import TransactionFailedError
from kisheka.domain.models import PurchaseOrder, Supplier
from kisheka.services.audit_service import stage_audit_log
from kisheka.services.financial_service import increment_committed_cost
from kisheka.sms.contracts import MaterialLine, PurchaseOrderRef, SupplierRef

logger = logging.getLogger(__name__)

_AWAITING = [status.value for status in AWAITING_RESPONSE_STATUSES]


def to_order_ref(po: PurchaseOrder) -> PurchaseOrderRef:
    """Snapshot an ORM purchase order."""
    return PurchaseOrderRef(
        id=po.id,
        purchase_order_number=po.purchase_order_number,
        supplier_id=po.supplier_id,
        status=PurchaseOrderStatus(po.status),
        project_id=po.project_id,
        supplier_name=po.supplier_name,
        phase_id=po.phase_id,
        created_by=po.created_by,
        is_bulk_order=bool(po.is_bulk_order),
        supports_partial_response=bool(po.supports_partial_response),
        materials=tuple(MaterialLine.from_dict(line) for line in (po.materials or [])),
        material_name=po.material_name,
        unit=po.unit,
        unit_cost=po.unit_cost,
        quantity_ordered=po.quantity_ordered,
        total_cost=po.total_cost or 0.0,
        delivery_date=po.delivery_date,
        response_token_expires_at=po.response_token_expires_at,
        created_at=po.created_at,
    )


def to_supplier_ref(supplier: Supplier) -> SupplierRef:
    """Snapshot an ORM supplier."""
    try:
        language = Language(supplier.language_preference or Language.EN.value)
    except ValueError:
        language = Language.EN
    return SupplierRef(
        id=supplier.id,
        name=supplier.name,
        phone=supplier.phone,
        language_preference=language,
        sms_enabled=bool(supplier.sms_enabled),
    )


class SqlOrderRepository:
    """OrderLookupPort + OrderMutationPort over one AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def find_by_reference(self, reference: str) -> Optional[PurchaseOrderRef]:
        result = await self.db.execute(
            select(PurchaseOrder).where(
                func.upper(PurchaseOrder.purchase_order_number) == reference.upper(),
                PurchaseOrder.deleted_at.is_(None),
            )
        )
        po = result.scalar_one_or_none()
        return to_order_ref(po) if po else None

    async def find_active_supplier_by_phone(self, phone_variants: list[str]) -> Optional[SupplierRef]:
        if not phone_variants:
            return None
        result = await self.db.execute(
            select(Supplier)
            .where(
                Supplier.phone.in_(phone_variants),
                Supplier.status == SupplierStatus.ACTIVE.value,
                Supplier.deleted_at.is_(None),
            )
            .order_by(Supplier.created_at.desc())
            .limit(1)
        )
        supplier = result.scalar_one_or_none()
        return to_supplier_ref(supplier) if supplier else None

    async def find_supplier_by_id(self, supplier_id: str) -> Optional[SupplierRef]:
        supplier = await self.db.get(Supplier, supplier_id)
        if supplier is None or supplier.deleted_at is not None:
            return None
        return to_supplier_ref(supplier)

    async def find_most_recent_awaiting_order(self, supplier_id: str) -> Optional[PurchaseOrderRef]:
        result = await self.db.execute(
            select(PurchaseOrder)
            .where(
                PurchaseOrder.supplier_id == supplier_id,
                PurchaseOrder.status.in_(_AWAITING),
                PurchaseOrder.deleted_at.is_(None),
            )
            .order_by(PurchaseOrder.created_at.desc())
            .limit(1)
        )
        po = result.scalar_one_or_none()
        return to_order_ref(po) if po else None

    async def count_awaiting_orders(self, supplier_id: str) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(PurchaseOrder)
            .where(
                PurchaseOrder.supplier_id == supplier_id,
                PurchaseOrder.status.in_(_AWAITING),
                PurchaseOrder.deleted_at.is_(None),
            )
        )
        return int(result.scalar_one())

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def _conditional_update(self, order_id: str, fields: dict[str, Any]):
        return (
            update(PurchaseOrder)
            .where(PurchaseOrder.id == order_id, PurchaseOrder.status.in_(_AWAITING))
            .values(**fields)
            .execution_options(synchronize_session="fetch")
        )

    async def apply_transition(
        self,
        order_id: str,
        new_status: PurchaseOrderStatus,
        fields: dict[str, Any],
    ) -> bool:
        values = {**fields, "status": new_status.value}
        try:
            result = await self.db.execute(self._conditional_update(order_id, values))
            if result.rowcount != 1:
                await self.db.rollback()
                logger.info("PO %s no longer awaiting a response; %s not applied", order_id, new_status.value)
                return False
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return True

    async def apply_accept_transaction(
        self,
        order_id: str,
        fields: dict[str, Any],
        project_id: str,
        amount: float,
        audit_changes: dict[str, Any],
        audit_action: AuditAction = AuditAction.AUTO_CONFIRMED,
    ) -> bool:
        """Status + committed-cost increment + audit row, all or nothing."""
        try:
            result = await self.db.execute(self._conditional_update(order_id, fields))
            if result.rowcount != 1:
                await self.db.rollback()
                logger.info("PO %s no longer awaiting a response; accept not applied", order_id)
                return False

            committed = await increment_committed_cost(self.db, project_id, amount)
            stage_audit_log(
                self.db,
                audit_action,
                "PURCHASE_ORDER",
                order_id,
                project_id,
                {**audit_changes, "committed_amount": amount},
            )
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error("Accept transaction for PO %s rolled back: %s", order_id, e)
            raise TransactionFailedError(order_id, str(e)) from e

        logger.info(
            "PO %s accepted; project %s committed cost now %.2f",
            order_id, project_id, committed,
        )
        return True
