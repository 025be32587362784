"""Audit service — before/after records of automated purchase-order changes."""

import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from kisheka.domain.enums import AuditAction
from kisheka.domain.models import AuditLog

logger = logging.getLogger(__name__)


def stage_audit_log(
    db: AsyncSession,
    action: AuditAction,
    entity_type: str,
    entity_id: str,
    project_id: Optional[str],
    changes: dict[str, Any],
    user_id: Optional[str] = None,
) -> AuditLog:
    """Add an audit row to the session without committing."""
    entry = AuditLog(
        user_id=user_id,
        action=action.value,
        entity_type=entity_type,
        entity_id=entity_id,
        project_id=project_id,
        changes=changes,
    )
    db.add(entry)
    return entry


class AuditService:
    """AuditPort backed by the audit_logs table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: str,
        project_id: Optional[str],
        changes: dict[str, Any],
    ) -> None:
        try:
            stage_audit_log(self.db, action, entity_type, entity_id, project_id, changes)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        logger.info("Audit %s recorded for %s %s", action.value, entity_type, entity_id)
