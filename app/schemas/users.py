"""User schemas for response serialization."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class UserRole(str, Enum):
    """Role a user acts in."""

    PATIENT = "patient"
    DOCTOR = "doctor"
    ADMIN = "admin"


class UserResponse(BaseModel):
    """User schema for API responses."""

    id: UUID
    organization_id: UUID | None = None
    email: str
    full_name: str | None = None
    phone: str | None = None
    role: UserRole
    specialization: str | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class DoctorSummary(BaseModel):
    """Public doctor listing entry."""

    id: UUID
    organization_id: UUID | None = None
    email: str
    full_name: str | None = None
    specialization: str | None = None

    model_config = {"from_attributes": True}


class DoctorListResponse(BaseModel):
    """Paginated doctor listing."""

    total: int
    page: int
    page_size: int
    items: list[DoctorSummary]
