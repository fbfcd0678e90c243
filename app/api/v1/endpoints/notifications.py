"""Notification endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import CurrentUser, DatabaseSession
from app.schemas.notifications import NotificationHistoryItem, NotificationHistoryResponse
from app.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get(
    "",
    response_model=NotificationHistoryResponse,
    summary="Get current user's notifications",
)
async def get_my_notifications(
    current_user: CurrentUser,
    db: DatabaseSession,
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    unread_only: bool = Query(False, description="Only notifications not yet read"),
) -> NotificationHistoryResponse:
    """
    Get notifications for the authenticated user, newest first.

    Args:
        current_user: Authenticated user
        db: Database session
        page: Page number (starts at 1)
        page_size: Number of items per page (max 100)
        unread_only: Skip notifications already read

    Returns:
        Paginated notification history
    """
    result = await NotificationService.get_user_notifications(
        db=db,
        user_id=current_user["id"],
        page=page,
        page_size=page_size,
        unread_only=unread_only,
    )

    return NotificationHistoryResponse(
        notifications=[
            NotificationHistoryItem.model_validate(n) for n in result["notifications"]
        ],
        total=result["total"],
        page=result["page"],
        page_size=result["page_size"],
        unread_count=result["unread_count"],
    )


@router.patch(
    "/{notification_id}/read",
    response_model=NotificationHistoryItem,
    status_code=status.HTTP_200_OK,
    summary="Mark notification as read",
)
async def mark_notification_read(
    notification_id: UUID,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> NotificationHistoryItem:
    """
    Mark a notification as read.

    Raises:
        NotFoundException: If the notification is not the user's
    """
    notification = await NotificationService.mark_notification_as_read(
        db=db,
        notification_id=notification_id,
        user_id=current_user["id"],
    )
    return NotificationHistoryItem.model_validate(notification)
