"""Audit trail service."""

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit_logs import audit_logs

logger = structlog.get_logger(__name__)


class AuditService:
    """Service for writing audit log entries."""

    @staticmethod
    async def record(
        db: AsyncSession,
        actor_id: UUID | None,
        action: str,
        resource_type: str,
        resource_id: UUID | str,
        metadata: dict[str, Any] | None = None,
        description: str | None = None,
    ) -> bool:
        """
        Persist an audit entry for a completed user action.

        Fire-and-forget: a failure here is logged and rolled back so it never
        aborts the operation being audited.

        Args:
            db: Database session
            actor_id: User who performed the action
            action: Action name, e.g. ``CANCEL_APPOINTMENT``
            resource_type: Type of the affected resource
            resource_id: ID of the affected resource
            metadata: Extra JSON-serializable details
            description: Human readable summary

        Returns:
            True if the entry was written
        """
        try:
            await db.execute(
                audit_logs.insert().values(
                    user_id=actor_id,
                    action=action,
                    category="USER_ACTIVITY",
                    level="INFO",
                    description=description,
                    resource_type=resource_type,
                    resource_id=str(resource_id),
                    details=metadata,
                )
            )
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.warning(
                "audit_log_failed",
                action=action,
                resource_type=resource_type,
                resource_id=str(resource_id),
                error=str(e),
            )
            return False

        return True
