"""Financial service — committed-cost ledger and project/phase finance counters.

``increment_committed_cost`` runs inside the caller's transaction and never
commits; the recalculation helpers are standalone and commit their own work.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from kisheka.domain.enums import COMMITTED_STATUSES
from kisheka.domain.models import Material, Phase, Project, PurchaseOrder
from kisheka.services.material_service import create_materials_from_order
from kisheka.sms.contracts import PurchaseOrderRef

logger = logging.getLogger(__name__)

_COMMITTED = [status.value for status in COMMITTED_STATUSES]


class ProjectNotFoundError(LookupError):
    """Raised when a ledger update targets a project that does not exist."""


async def increment_committed_cost(db: AsyncSession, project_id: str, amount: float) -> float:
    """Add ``amount`` to the project's committed cost, without committing.

    Available capital is kept as invested - used - committed.

    Returns:
        The new committed cost.

    Raises:
        ProjectNotFoundError: If the project does not exist.
    """
    result = await db.execute(
        select(Project.committed_cost, Project.total_invested, Project.total_used)
        .where(Project.id == project_id, Project.deleted_at.is_(None))
    )
    row = result.one_or_none()
    if row is None:
        raise ProjectNotFoundError(f"Project {project_id} not found")

    committed = (row.committed_cost or 0.0) + amount
    available = (row.total_invested or 0.0) - (row.total_used or 0.0) - committed
    await db.execute(
        update(Project)
        .where(Project.id == project_id)
        .values(committed_cost=committed, available_capital=available)
        .execution_options(synchronize_session="fetch")
    )
    return committed


async def calculate_committed_cost(db: AsyncSession, project_id: str) -> float:
    """Sum of total cost over the project's accepted / ready-for-delivery orders."""
    result = await db.execute(
        select(func.coalesce(func.sum(PurchaseOrder.total_cost), 0.0))
        .where(
            PurchaseOrder.project_id == project_id,
            PurchaseOrder.status.in_(_COMMITTED),
            PurchaseOrder.deleted_at.is_(None),
        )
    )
    return float(result.scalar_one())


async def recalculate_project_finances(db: AsyncSession, project_id: str) -> dict:
    """Rebuild committed cost, used amount and available capital from source rows."""
    project = await db.get(Project, project_id)
    if project is None or project.deleted_at is not None:
        raise ProjectNotFoundError(f"Project {project_id} not found")

    committed = await calculate_committed_cost(db, project_id)
    used_result = await db.execute(
        select(func.coalesce(func.sum(Material.total_cost), 0.0))
        .where(Material.project_id == project_id, Material.status == "approved")
    )
    used = float(used_result.scalar_one())

    project.committed_cost = committed
    project.total_used = used
    project.available_capital = (project.total_invested or 0.0) - used - committed
    project.finances_recalculated_at = datetime.now(timezone.utc)
    await db.commit()

    logger.info(
        "Recalculated finances for project %s: committed=%.2f used=%.2f available=%.2f",
        project_id, committed, used, project.available_capital,
    )
    return {
        "committed_cost": committed,
        "total_used": used,
        "available_capital": project.available_capital,
    }


async def update_phase_committed_costs_for_po(db: AsyncSession, order: PurchaseOrderRef) -> float | None:
    """Refresh committed cost and remaining budget of the order's phase."""
    if not order.phase_id:
        logger.warning("PO %s has no phase; skipping phase update", order.purchase_order_number)
        return None

    phase = await db.get(Phase, order.phase_id)
    if phase is None or phase.deleted_at is not None:
        logger.warning("Phase %s for PO %s not found", order.phase_id, order.purchase_order_number)
        return None

    result = await db.execute(
        select(func.coalesce(func.sum(PurchaseOrder.total_cost), 0.0))
        .where(
            PurchaseOrder.phase_id == phase.id,
            PurchaseOrder.status.in_(_COMMITTED),
            PurchaseOrder.deleted_at.is_(None),
        )
    )
    committed = float(result.scalar_one())
    phase.committed_cost = committed
    phase.remaining_budget = (phase.budget or 0.0) - (phase.actual_spending or 0.0) - committed
    await db.commit()
    return committed


class FinancialEffects:
    """FinancialEffectsPort over the session: phase refresh, project recompute, materials.

    Every method leaves the shared session usable for the next follow-up:
    a failure is rolled back before it is re-raised.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def refresh_phase_committed_cost(self, order: PurchaseOrderRef) -> None:
        try:
            await update_phase_committed_costs_for_po(self.db, order)
        except Exception:
            await self.db.rollback()
            raise

    async def recalculate_project_finances(self, project_id: str) -> None:
        try:
            await recalculate_project_finances(self.db, project_id)
        except Exception:
            await self.db.rollback()
            raise

    async def create_materials_for_order(self, order: PurchaseOrderRef) -> list[str]:
        try:
            return await create_materials_from_order(self.db, order)
        except Exception:
            await self.db.rollback()
            raise
