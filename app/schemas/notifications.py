"""In-app notification schemas."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class NotificationType(str, Enum):
    """Kinds of appointment notifications."""

    APPOINTMENT_CREATED = "appointment_created"
    APPOINTMENT_CONFIRMED = "appointment_confirmed"
    APPOINTMENT_REJECTED = "appointment_rejected"
    APPOINTMENT_CANCELLED = "appointment_cancelled"
    APPOINTMENT_RESCHEDULED = "appointment_rescheduled"
    RESCHEDULE_REQUEST = "reschedule_request"
    RESCHEDULE_REJECTED = "reschedule_rejected"
    OTHER = "other"


class NotificationHistoryItem(BaseModel):
    """Schema for a stored notification."""

    id: UUID
    user_id: UUID
    title: str
    body: str
    notification_type: NotificationType
    priority: str
    data: dict[str, Any] | None = None
    read_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationHistoryResponse(BaseModel):
    """Schema for paginated notification history."""

    notifications: list[NotificationHistoryItem]
    total: int
    page: int
    page_size: int
    unread_count: int = Field(default=0)
