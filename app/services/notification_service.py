"""Notification service for in-app appointment notifications."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, desc, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundException
from app.models.notifications import notifications
from app.schemas.notifications import NotificationType

logger = structlog.get_logger(__name__)

# kind -> (title, body template, priority)
TEMPLATES: dict[NotificationType, tuple[str, str, str]] = {
    NotificationType.APPOINTMENT_CREATED: (
        "New Appointment Request",
        "New appointment request for {date} at {time}",
        "normal",
    ),
    NotificationType.APPOINTMENT_CONFIRMED: (
        "Appointment Confirmed",
        "Your appointment on {date} at {time} has been confirmed",
        "normal",
    ),
    NotificationType.APPOINTMENT_REJECTED: (
        "Appointment Rejected",
        "Your appointment request for {date} at {time} was not accepted",
        "normal",
    ),
    NotificationType.APPOINTMENT_CANCELLED: (
        "Appointment Cancelled",
        "The appointment on {date} at {time} has been cancelled",
        "high",
    ),
    NotificationType.APPOINTMENT_RESCHEDULED: (
        "Appointment Rescheduled",
        "Your appointment has been moved to {new_date} at {new_time}",
        "high",
    ),
    NotificationType.RESCHEDULE_REQUEST: (
        "Reschedule Requested",
        "A reschedule from {date} at {time} to {new_date} at {new_time} was requested",
        "normal",
    ),
    NotificationType.RESCHEDULE_REJECTED: (
        "Reschedule Declined",
        "Your request to move the appointment to {new_date} at {new_time} was declined",
        "normal",
    ),
}


class _Blank(dict):
    """Format mapping that renders missing keys as an empty string."""

    def __missing__(self, key: str) -> str:
        return ""


class NotificationService:
    """Service for managing in-app notifications."""

    @staticmethod
    def render(kind: NotificationType, payload: dict[str, Any]) -> tuple[str, str, str]:
        """
        Render the title, body and priority for a notification kind.

        Args:
            kind: Notification kind
            payload: Values referenced by the template

        Returns:
            Tuple of (title, body, priority)
        """
        title, body, priority = TEMPLATES.get(
            kind, ("Appointment Update", "Your appointment was updated", "normal")
        )
        values = _Blank({key: str(value) for key, value in payload.items()})
        return title, body.format_map(values), priority

    @staticmethod
    async def notify(
        db: AsyncSession,
        user_id: str | UUID,
        kind: NotificationType,
        payload: dict[str, Any],
    ) -> bool:
        """
        Store a notification for a user.

        Best effort: failures are logged and rolled back, never raised.

        Args:
            db: Database session
            user_id: Recipient user ID
            kind: Notification kind
            payload: Template values, stored alongside the notification

        Returns:
            True if the notification was stored
        """
        if isinstance(user_id, str):
            user_id = UUID(user_id)

        title, body, priority = NotificationService.render(kind, payload)

        try:
            await db.execute(
                notifications.insert().values(
                    user_id=user_id,
                    title=title,
                    body=body,
                    notification_type=kind.value,
                    priority=priority,
                    data={key: str(value) for key, value in payload.items()},
                )
            )
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.warning(
                "notification_failed",
                user_id=str(user_id),
                kind=kind.value,
                error=str(e),
            )
            return False

        logger.info("notification_stored", user_id=str(user_id), kind=kind.value)
        return True

    @staticmethod
    async def get_user_notifications(
        db: AsyncSession,
        user_id: UUID,
        page: int = 1,
        page_size: int = 50,
        unread_only: bool = False,
    ) -> dict[str, Any]:
        """
        Get notification history for a user.

        Args:
            db: Database session
            user_id: User ID
            page: Page number (1-indexed)
            page_size: Number of items per page
            unread_only: Only return notifications not yet read

        Returns:
            Dictionary with notifications list and pagination info
        """
        query = select(notifications).where(notifications.c.user_id == user_id)

        if unread_only:
            query = query.where(notifications.c.read_at.is_(None))

        count_query = select(func.count()).select_from(query.subquery())
        total = (await db.execute(count_query)).scalar_one()

        unread_query = select(func.count()).where(
            and_(notifications.c.user_id == user_id, notifications.c.read_at.is_(None))
        )
        unread_count = (await db.execute(unread_query)).scalar_one()

        query = (
            query.order_by(desc(notifications.c.created_at))
            .limit(page_size)
            .offset((page - 1) * page_size)
        )

        result = await db.execute(query)

        return {
            "notifications": [dict(row) for row in result.mappings().all()],
            "total": total,
            "page": page,
            "page_size": page_size,
            "unread_count": unread_count,
        }

    @staticmethod
    async def mark_notification_as_read(
        db: AsyncSession,
        notification_id: UUID,
        user_id: UUID,
    ) -> dict[str, Any]:
        """
        Mark a notification as read.

        Raises:
            NotFoundException: If the notification does not exist or belongs to someone else
        """
        stmt = (
            update(notifications)
            .where(
                and_(
                    notifications.c.id == notification_id,
                    notifications.c.user_id == user_id,
                )
            )
            .values(read_at=datetime.now(UTC))
            .returning(notifications)
        )

        result = await db.execute(stmt)
        row = result.mappings().first()

        if not row:
            await db.rollback()
            raise NotFoundException("Notification not found")

        await db.commit()
        return dict(row)
