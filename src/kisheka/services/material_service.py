"""Material service — auto-creates material entries from accepted purchase orders."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from kisheka.domain.models import Material
from kisheka.sms.contracts import PurchaseOrderRef

logger = logging.getLogger(__name__)


async def create_materials_from_order(db: AsyncSession, order: PurchaseOrderRef) -> list[str]:
    """Create one approved, automatic Material per order line.

    Idempotent per purchase order: if entries already exist for it, nothing
    new is created and the existing ids are returned.
    """
    existing = await db.execute(select(Material.id).where(Material.purchase_order_id == order.id))
    existing_ids = list(existing.scalars().all())
    if existing_ids:
        logger.info("Materials already exist for PO %s; skipping", order.purchase_order_number)
        return existing_ids

    if order.is_bulk_order:
        lines = [
            {
                "material_request_id": line.material_request_id,
                "name": line.material_name,
                "quantity": line.quantity or 0.0,
                "unit": line.unit,
                "unit_cost": line.unit_cost or 0.0,
                "total_cost": (
                    line.total_cost
                    if line.total_cost is not None
                    else (line.quantity or 0.0) * (line.unit_cost or 0.0)
                ),
            }
            for line in order.materials
        ]
    else:
        lines = [{
            "material_request_id": None,
            "name": order.material_name or order.purchase_order_number,
            "quantity": order.quantity_ordered or 0.0,
            "unit": order.unit,
            "unit_cost": order.unit_cost or 0.0,
            "total_cost": order.total_cost or 0.0,
        }]

    created = []
    for line in lines:
        material = Material(
            project_id=order.project_id,
            phase_id=order.phase_id,
            purchase_order_id=order.id,
            created_by=order.created_by,
            status="approved",
            is_automatic=True,
            notes=f"Auto-created from {order.purchase_order_number} (supplier SMS confirmation)",
            **line,
        )
        db.add(material)
        created.append(material)

    await db.commit()
    logger.info("Created %d material entries for PO %s", len(created), order.purchase_order_number)
    return [material.id for material in created]
