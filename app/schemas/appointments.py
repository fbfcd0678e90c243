"""Appointment, reschedule and encounter schemas for request/response validation."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

TIME_FIELD_PATTERN = r"^\d{2}:\d{2}$"


class AppointmentStatus(str, Enum):
    """Appointment request status enumeration."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    RESCHEDULED = "rescheduled"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


# Bookings in these states hold their slot
LIVE_STATUSES = (AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value)

# No transition leaves these states
CLOSED_STATUSES = (AppointmentStatus.CANCELLED.value, AppointmentStatus.REJECTED.value)


class AppointmentPriority(str, Enum):
    """Appointment priority enumeration."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class RescheduleStatus(str, Enum):
    """Reschedule request status enumeration."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ProposedBy(str, Enum):
    """Which side of the booking proposed a reschedule."""

    PATIENT = "patient"
    DOCTOR = "doctor"


class AppointmentRequestCreate(BaseModel):
    """Schema for a patient requesting a doctor's time."""

    doctor_id: UUID
    requested_date: date
    requested_time: str = Field(..., pattern=TIME_FIELD_PATTERN, examples=["10:30"])
    reason: str = Field(..., min_length=1, max_length=500)
    priority: AppointmentPriority = AppointmentPriority.NORMAL
    notes: str | None = Field(None, max_length=1000)


class AppointmentDecision(BaseModel):
    """Schema for the doctor's decision on a pending request."""

    status: AppointmentStatus
    notes: str | None = Field(None, max_length=1000)


class AppointmentCancel(BaseModel):
    """Schema for cancelling an appointment."""

    reason: str | None = Field(None, max_length=1000)


class EncounterResponse(BaseModel):
    """Schema for a clinical encounter."""

    id: UUID
    code: str
    appointment_id: UUID
    doctor_id: UUID
    patient_id: UUID
    start_time: datetime
    created_at: datetime

    model_config = {"from_attributes": True}


class RescheduleCreate(BaseModel):
    """Schema for proposing a new slot for a confirmed appointment."""

    new_date: date
    new_time: str = Field(..., pattern=TIME_FIELD_PATTERN, examples=["14:00"])
    reason: str | None = Field(None, max_length=500)
    notes: str | None = Field(None, max_length=1000)


class RescheduleDecision(BaseModel):
    """Schema for approving or rejecting a reschedule proposal."""

    status: RescheduleStatus
    notes: str | None = Field(None, max_length=1000)


class RescheduleResponse(BaseModel):
    """Schema for reschedule request response."""

    id: UUID
    appointment_id: UUID
    requested_by: UUID
    requested_by_role: str
    current_date: date
    current_time: str
    new_date: date
    new_time: str
    reason: str | None = None
    notes: str | None = None
    proposed_by: ProposedBy
    status: RescheduleStatus
    created_at: datetime
    resolved_at: datetime | None = None

    model_config = {"from_attributes": True}


class AppointmentResponse(BaseModel):
    """Schema for appointment request response."""

    id: UUID
    patient_id: UUID
    doctor_id: UUID
    requested_date: date
    requested_time: str
    reason: str
    priority: AppointmentPriority
    status: AppointmentStatus
    notes: str | None = None
    created_at: datetime
    updated_at: datetime
    cancelled_at: datetime | None = None
    encounter: EncounterResponse | None = None
    reschedule_requests: list[RescheduleResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    total: int
    page: int
    page_size: int
    items: list[AppointmentResponse]


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    status: AppointmentStatus | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class DayRescheduleRequest(BaseModel):
    """Schema for a doctor withdrawing a weekday and rescheduling its bookings."""

    day_of_week: str = Field(..., min_length=1, examples=["Monday"])
    reason: str = Field(..., min_length=1, max_length=500)
    new_date: date | None = None
    new_time: str | None = Field(None, pattern=TIME_FIELD_PATTERN)
    disable_day: bool = True


class DayRescheduleResponse(BaseModel):
    """Schema for the outcome of a day withdrawal."""

    day_of_week: str
    affected_count: int
    appointment_ids: list[UUID]
    reschedule_requests: list[RescheduleResponse]
    day_disabled: bool
