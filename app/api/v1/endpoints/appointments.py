"""Appointment endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import (
    CurrentDoctor,
    CurrentParticipant,
    CurrentPatient,
    CurrentUser,
    DatabaseSession,
)
from app.schemas.appointments import (
    AppointmentCancel,
    AppointmentDecision,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentRequestCreate,
    AppointmentResponse,
    AppointmentStatus,
    DayRescheduleRequest,
    DayRescheduleResponse,
    RescheduleCreate,
    RescheduleDecision,
    RescheduleResponse,
)
from app.schemas.availability import WeeklyAvailabilityResponse, WeeklyAvailabilityUpdate
from app.schemas.users import DoctorListResponse, DoctorSummary
from app.services.appointment_service import AppointmentService
from app.services.availability_service import AvailabilityService
from app.services.reschedule_service import RescheduleService
from app.services.user_service import UserService
from app.services.withdrawal_service import DayWithdrawalService

router = APIRouter()


@router.post(
    "/request",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request an appointment",
)
async def request_appointment(
    data: AppointmentRequestCreate,
    current_user: CurrentPatient,
    db: DatabaseSession,
) -> AppointmentResponse:
    """
    Request a slot with a doctor.

    The request is created as ``pending`` and must be confirmed by the doctor.

    Args:
        data: Doctor, date, time and reason
        current_user: Authenticated patient
        db: Database session

    Returns:
        Created appointment request
    """
    service = AppointmentService(db)
    return await service.create_appointment(current_user["id"], data)


@router.get(
    "/my-appointments",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    summary="List my appointments",
)
async def list_my_appointments(
    current_user: CurrentParticipant,
    db: DatabaseSession,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """
    List appointments for the authenticated patient or doctor.

    Args:
        current_user: Authenticated user
        db: Database session
        status_filter: Filter by status
        page: Page number
        page_size: Items per page

    Returns:
        Paginated list of appointments with pending reschedule proposals
    """
    filters = AppointmentFilters(status=status_filter, page=page, page_size=page_size)

    service = AppointmentService(db)
    return await service.list_appointments(current_user["id"], filters)


@router.get(
    "/doctors",
    response_model=DoctorListResponse,
    status_code=status.HTTP_200_OK,
    summary="List doctors",
)
async def list_doctors(
    current_user: CurrentUser,
    db: DatabaseSession,
    search: str | None = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> DoctorListResponse:
    """
    List active doctors in the caller's organization.

    Args:
        current_user: Authenticated user
        db: Database session
        search: Match on name, email or specialization
        page: Page number
        page_size: Items per page

    Returns:
        Paginated list of doctors
    """
    doctors, total = await UserService.list_doctors(
        db,
        page=page,
        page_size=page_size,
        organization_id=current_user.get("organization_id"),
        search=search,
    )

    return DoctorListResponse(
        total=total,
        page=page,
        page_size=page_size,
        items=[DoctorSummary.model_validate(doctor) for doctor in doctors],
    )


@router.get(
    "/doctor/{doctor_id}/availability",
    response_model=WeeklyAvailabilityResponse,
    status_code=status.HTTP_200_OK,
    summary="Get a doctor's weekly availability",
)
async def get_doctor_availability(
    doctor_id: UUID,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> WeeklyAvailabilityResponse:
    """
    Get a doctor's week, with closed placeholders for days never configured.

    Raises:
        NotFoundException: If the doctor does not exist
    """
    await UserService.resolve_provider(db, doctor_id)

    service = AvailabilityService(db)
    return await service.get_weekly_schedule(doctor_id)


@router.get(
    "/my/availability",
    response_model=WeeklyAvailabilityResponse,
    status_code=status.HTTP_200_OK,
    summary="Get my weekly availability",
)
async def get_my_availability(
    current_user: CurrentDoctor,
    db: DatabaseSession,
) -> WeeklyAvailabilityResponse:
    """Get the authenticated doctor's week."""
    service = AvailabilityService(db)
    return await service.get_weekly_schedule(current_user["id"])


@router.put(
    "/my/availability",
    response_model=WeeklyAvailabilityResponse,
    status_code=status.HTTP_200_OK,
    summary="Update my weekly availability",
)
async def update_my_availability(
    data: WeeklyAvailabilityUpdate,
    current_user: CurrentDoctor,
    db: DatabaseSession,
) -> WeeklyAvailabilityResponse:
    """
    Upsert the authenticated doctor's weekday windows.

    Disabling a weekday that still has upcoming bookings is refused with 409;
    use ``/my/reschedule-day`` for that.

    Args:
        data: Weekday entries to upsert
        current_user: Authenticated doctor
        db: Database session

    Returns:
        The full week after the update
    """
    service = AvailabilityService(db)
    return await service.update_weekly_availability(current_user["id"], data)


@router.post(
    "/my/reschedule-day",
    response_model=DayRescheduleResponse,
    status_code=status.HTTP_200_OK,
    summary="Withdraw a weekday and reschedule its bookings",
)
async def reschedule_my_day(
    data: DayRescheduleRequest,
    current_user: CurrentDoctor,
    db: DatabaseSession,
) -> DayRescheduleResponse:
    """
    Raise reschedule proposals for every upcoming booking on a weekday.

    Args:
        data: Weekday, reason and optional replacement date/time
        current_user: Authenticated doctor
        db: Database session

    Returns:
        Affected bookings and the proposals raised for them
    """
    service = DayWithdrawalService(db)
    return await service.reschedule_day(current_user["id"], data)


@router.patch(
    "/reschedule/{reschedule_id}/status",
    response_model=RescheduleResponse,
    status_code=status.HTTP_200_OK,
    summary="Approve or reject a reschedule request",
)
async def resolve_reschedule(
    reschedule_id: UUID,
    data: RescheduleDecision,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> RescheduleResponse:
    """
    Resolve a pending reschedule proposal.

    Args:
        reschedule_id: Reschedule request ID
        data: ``approved`` or ``rejected`` with optional notes
        current_user: Patient or doctor on the appointment
        db: Database session

    Returns:
        The resolved reschedule request
    """
    service = RescheduleService(db)
    return await service.resolve(reschedule_id, current_user["id"], data)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> AppointmentResponse:
    """
    Get a specific appointment with its encounter and reschedule history.

    Args:
        appointment_id: Appointment ID
        current_user: Authenticated user
        db: Database session

    Returns:
        Appointment details
    """
    service = AppointmentService(db)
    return await service.get_appointment(appointment_id, current_user["id"])


@router.patch(
    "/{appointment_id}/status",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Confirm, reject or cancel a pending request",
)
async def decide_appointment(
    appointment_id: UUID,
    data: AppointmentDecision,
    current_user: CurrentDoctor,
    db: DatabaseSession,
) -> AppointmentResponse:
    """
    Apply the doctor's decision to a pending request.

    Confirming also opens the clinical encounter.

    Args:
        appointment_id: Appointment ID
        data: New status and optional notes
        current_user: Authenticated doctor
        db: Database session

    Returns:
        Updated appointment
    """
    service = AppointmentService(db)
    return await service.decide_appointment(appointment_id, current_user["id"], data)


@router.patch(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    current_user: CurrentUser,
    db: DatabaseSession,
    data: AppointmentCancel | None = None,
) -> AppointmentResponse:
    """
    Cancel an appointment as its patient or doctor.

    Args:
        appointment_id: Appointment ID
        current_user: Authenticated user
        db: Database session
        data: Optional cancellation reason

    Returns:
        Cancelled appointment
    """
    service = AppointmentService(db)
    return await service.cancel_appointment(
        appointment_id,
        current_user["id"],
        data.reason if data else None,
    )


@router.post(
    "/{appointment_id}/reschedule",
    response_model=RescheduleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Propose a new slot",
)
async def propose_reschedule(
    appointment_id: UUID,
    data: RescheduleCreate,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> RescheduleResponse:
    """
    Propose a new date and time for a confirmed appointment.

    Args:
        appointment_id: Appointment ID
        data: Proposed date and time
        current_user: Patient or doctor on the appointment
        db: Database session

    Returns:
        Pending reschedule request
    """
    service = RescheduleService(db)
    return await service.propose(appointment_id, current_user["id"], data)
