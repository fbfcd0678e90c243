"""Tests for appointment requests: booking, decisions and cancellation."""

from datetime import timedelta
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from app.models.appointments import appointment_requests, encounters
from app.schemas.appointments import (
    AppointmentDecision,
    AppointmentFilters,
    AppointmentRequestCreate,
    AppointmentStatus,
)
from app.services.appointment_service import AppointmentService

HEALTH = "app.api.v1.endpoints.health"


def request_for(doctor_user: dict, requested_date, requested_time: str) -> AppointmentRequestCreate:
    return AppointmentRequestCreate(
        doctor_id=doctor_user["id"],
        requested_date=requested_date,
        requested_time=requested_time,
        reason="Persistent cough",
    )


async def count_encounters(db_session: AsyncSession, appointment_id) -> int:
    result = await db_session.execute(
        select(func.count())
        .select_from(encounters)
        .where(encounters.c.appointment_id == appointment_id)
    )
    return result.scalar_one()


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient) -> None:
    """Test health check endpoint."""
    response = await client.get("/api/v1/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data


@pytest.mark.asyncio
async def test_detailed_health_reports_schema_and_rules(client: AsyncClient) -> None:
    """The detailed check exposes the applied migration and the scheduling rules."""
    with (
        patch(f"{HEALTH}.check_database_connection", AsyncMock(return_value=True)),
        patch(f"{HEALTH}.get_schema_revision", AsyncMock(return_value="001")),
    ):
        response = await client.get("/api/v1/health/detailed")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["schema_revision"] == "001"
    assert data["scheduling"] == {
        "slot_minutes": settings.appointment_slot_minutes,
        "withdrawal_window_days": settings.withdrawal_window_days,
        "encounter_code_prefix": settings.encounter_code_prefix,
    }


@pytest.mark.asyncio
async def test_detailed_health_degraded_without_migrations(client: AsyncClient) -> None:
    """A reachable but unmigrated database is reported as degraded."""
    with (
        patch(f"{HEALTH}.check_database_connection", AsyncMock(return_value=True)),
        patch(f"{HEALTH}.get_schema_revision", AsyncMock(return_value=None)),
    ):
        response = await client.get("/api/v1/health/detailed")

    data = response.json()
    assert data["status"] == "degraded"
    assert data["database"] == "healthy"
    assert data["schema_revision"] is None


@pytest.mark.asyncio
async def test_create_appointment(
    db_session: AsyncSession,
    patient_user: dict,
    doctor_user: dict,
    monday_schedule: dict,
    next_monday,
) -> None:
    """A request inside the window is stored as pending."""
    service = AppointmentService(db_session)
    appointment = await service.create_appointment(
        patient_user["id"], request_for(doctor_user, next_monday, "10:00")
    )

    assert appointment.status == AppointmentStatus.PENDING
    assert appointment.patient_id == patient_user["id"]
    assert appointment.requested_date == next_monday
    assert appointment.requested_time == "10:00"
    assert appointment.encounter is None


@pytest.mark.asyncio
async def test_slots_closer_than_thirty_minutes_conflict(
    db_session: AsyncSession,
    patient_user: dict,
    other_patient_user: dict,
    doctor_user: dict,
    monday_schedule: dict,
    next_monday,
) -> None:
    """10:15 collides with 10:00; 10:30 is exactly one slot away and is accepted."""
    service = AppointmentService(db_session)
    await service.create_appointment(
        patient_user["id"], request_for(doctor_user, next_monday, "10:00")
    )

    with pytest.raises(ConflictException):
        await service.create_appointment(
            other_patient_user["id"], request_for(doctor_user, next_monday, "10:15")
        )

    appointment = await service.create_appointment(
        other_patient_user["id"], request_for(doctor_user, next_monday, "10:30")
    )
    assert appointment.status == AppointmentStatus.PENDING


@pytest.mark.asyncio
async def test_conflict_ignores_closed_and_rescheduled_bookings(
    db_session: AsyncSession,
    patient_user: dict,
    doctor_user: dict,
    monday_schedule: dict,
    make_booking,
    next_monday,
) -> None:
    """Only pending and confirmed bookings hold a slot."""
    await make_booking(next_monday, "10:00", status="cancelled")
    await make_booking(next_monday, "10:10", status="rejected")
    await make_booking(next_monday, "10:20", status="rescheduled")

    service = AppointmentService(db_session)
    appointment = await service.create_appointment(
        patient_user["id"], request_for(doctor_user, next_monday, "10:05")
    )

    assert appointment.status == AppointmentStatus.PENDING


@pytest.mark.asyncio
async def test_conflict_is_per_day(
    db_session: AsyncSession,
    patient_user: dict,
    doctor_user: dict,
    monday_schedule: dict,
    make_booking,
    next_monday,
) -> None:
    """The same time a week later is a different slot."""
    await make_booking(next_monday, "10:00", status="confirmed")

    service = AppointmentService(db_session)
    appointment = await service.create_appointment(
        patient_user["id"], request_for(doctor_user, next_monday + timedelta(weeks=1), "10:00")
    )

    assert appointment.status == AppointmentStatus.PENDING


@pytest.mark.asyncio
async def test_request_outside_window_is_refused(
    db_session: AsyncSession,
    patient_user: dict,
    doctor_user: dict,
    monday_schedule: dict,
    next_monday,
) -> None:
    """Availability is checked before anything is stored."""
    service = AppointmentService(db_session)

    with pytest.raises(ConflictException) as exc_info:
        await service.create_appointment(
            patient_user["id"], request_for(doctor_user, next_monday, "18:00")
        )
    assert exc_info.value.message == "Doctor is not available at the requested time"

    with pytest.raises(ConflictException):
        await service.create_appointment(
            patient_user["id"],
            request_for(doctor_user, next_monday + timedelta(days=1), "10:00"),
        )

    result = await db_session.execute(select(func.count()).select_from(appointment_requests))
    assert result.scalar_one() == 0


@pytest.mark.asyncio
async def test_request_with_unknown_doctor(
    db_session: AsyncSession,
    patient_user: dict,
    next_monday,
) -> None:
    """Bookings need an active doctor."""
    service = AppointmentService(db_session)

    with pytest.raises(NotFoundException):
        await service.create_appointment(
            patient_user["id"],
            AppointmentRequestCreate(
                doctor_id=uuid4(),
                requested_date=next_monday,
                requested_time="10:00",
                reason="Checkup",
            ),
        )


@pytest.mark.asyncio
async def test_request_with_patient_as_doctor(
    db_session: AsyncSession,
    patient_user: dict,
    other_patient_user: dict,
    next_monday,
) -> None:
    """A user without the doctor role is not a provider."""
    service = AppointmentService(db_session)

    with pytest.raises(NotFoundException):
        await service.create_appointment(
            patient_user["id"], request_for(other_patient_user, next_monday, "10:00")
        )


@pytest.mark.asyncio
async def test_request_with_malformed_time(
    db_session: AsyncSession,
    patient_user: dict,
    doctor_user: dict,
    monday_schedule: dict,
    next_monday,
) -> None:
    """Services revalidate the time for callers that skip schema validation."""
    service = AppointmentService(db_session)
    data = AppointmentRequestCreate.model_construct(
        doctor_id=doctor_user["id"],
        requested_date=next_monday,
        requested_time="9am",
        reason="Checkup",
    )

    with pytest.raises(ValidationException) as exc_info:
        await service.create_appointment(patient_user["id"], data)

    assert exc_info.value.details == {"fields": ["requested_time"]}


@pytest.mark.asyncio
async def test_confirm_creates_single_encounter(
    db_session: AsyncSession,
    doctor_user: dict,
    monday_schedule: dict,
    make_booking,
    next_monday,
) -> None:
    """Confirming opens exactly one encounter; a second confirm is refused."""
    booking = await make_booking(next_monday, "14:30")
    service = AppointmentService(db_session)

    appointment = await service.decide_appointment(
        booking["id"],
        doctor_user["id"],
        AppointmentDecision(status=AppointmentStatus.CONFIRMED),
    )

    assert appointment.status == AppointmentStatus.CONFIRMED
    assert appointment.encounter is not None
    assert appointment.encounter.code.startswith(f"CB{next_monday.day:02d}14")
    assert len(appointment.encounter.code) == 9
    assert appointment.encounter.start_time.hour == 14
    assert appointment.encounter.start_time.minute == 30

    with pytest.raises(ConflictException):
        await service.decide_appointment(
            booking["id"],
            doctor_user["id"],
            AppointmentDecision(status=AppointmentStatus.CONFIRMED),
        )

    assert await count_encounters(db_session, booking["id"]) == 1


@pytest.mark.asyncio
async def test_reject_creates_no_encounter(
    db_session: AsyncSession,
    doctor_user: dict,
    monday_schedule: dict,
    make_booking,
    next_monday,
) -> None:
    """Rejection is terminal and opens nothing."""
    booking = await make_booking(next_monday, "10:00")
    service = AppointmentService(db_session)

    appointment = await service.decide_appointment(
        booking["id"],
        doctor_user["id"],
        AppointmentDecision(status=AppointmentStatus.REJECTED, notes="Fully booked"),
    )

    assert appointment.status == AppointmentStatus.REJECTED
    assert appointment.notes == "Fully booked"
    assert await count_encounters(db_session, booking["id"]) == 0

    with pytest.raises(ConflictException):
        await service.decide_appointment(
            booking["id"],
            doctor_user["id"],
            AppointmentDecision(status=AppointmentStatus.CONFIRMED),
        )


@pytest.mark.asyncio
async def test_decide_rejects_non_decision_status(
    db_session: AsyncSession,
    doctor_user: dict,
    monday_schedule: dict,
    make_booking,
    next_monday,
) -> None:
    """A doctor cannot move a request back to pending or to rescheduled."""
    booking = await make_booking(next_monday, "10:00")
    service = AppointmentService(db_session)

    with pytest.raises(ValidationException):
        await service.decide_appointment(
            booking["id"],
            doctor_user["id"],
            AppointmentDecision(status=AppointmentStatus.RESCHEDULED),
        )


@pytest.mark.asyncio
async def test_decide_by_other_doctor_is_forbidden(
    db_session: AsyncSession,
    monday_schedule: dict,
    make_booking,
    next_monday,
) -> None:
    """Only the assigned doctor decides."""
    booking = await make_booking(next_monday, "10:00")
    service = AppointmentService(db_session)

    with pytest.raises(ForbiddenException):
        await service.decide_appointment(
            booking["id"],
            uuid4(),
            AppointmentDecision(status=AppointmentStatus.CONFIRMED),
        )


@pytest.mark.asyncio
async def test_cancel_keeps_encounter(
    db_session: AsyncSession,
    patient_user: dict,
    doctor_user: dict,
    monday_schedule: dict,
    make_booking,
    next_monday,
) -> None:
    """Cancelling a confirmed booking stores the reason and keeps the encounter."""
    booking = await make_booking(next_monday, "10:00")
    service = AppointmentService(db_session)
    await service.decide_appointment(
        booking["id"],
        doctor_user["id"],
        AppointmentDecision(status=AppointmentStatus.CONFIRMED),
    )

    appointment = await service.cancel_appointment(
        booking["id"], patient_user["id"], reason="Feeling better"
    )

    assert appointment.status == AppointmentStatus.CANCELLED
    assert appointment.notes == "Feeling better"
    assert appointment.cancelled_at is not None
    assert await count_encounters(db_session, booking["id"]) == 1

    with pytest.raises(ConflictException):
        await service.cancel_appointment(booking["id"], patient_user["id"])


@pytest.mark.asyncio
async def test_cancel_frees_slot(
    db_session: AsyncSession,
    patient_user: dict,
    other_patient_user: dict,
    doctor_user: dict,
    monday_schedule: dict,
    make_booking,
    next_monday,
) -> None:
    """A cancelled booking no longer blocks its slot."""
    booking = await make_booking(next_monday, "10:00")
    service = AppointmentService(db_session)
    await service.cancel_appointment(booking["id"], doctor_user["id"])

    appointment = await service.create_appointment(
        other_patient_user["id"], request_for(doctor_user, next_monday, "10:00")
    )
    assert appointment.status == AppointmentStatus.PENDING


@pytest.mark.asyncio
async def test_cancel_by_stranger_is_forbidden(
    db_session: AsyncSession,
    other_patient_user: dict,
    monday_schedule: dict,
    make_booking,
    next_monday,
) -> None:
    """Only the patient or doctor on a booking may cancel it."""
    booking = await make_booking(next_monday, "10:00")
    service = AppointmentService(db_session)

    with pytest.raises(ForbiddenException):
        await service.cancel_appointment(booking["id"], other_patient_user["id"])


@pytest.mark.asyncio
async def test_request_appointment_endpoint(
    client: AsyncClient,
    patient_headers: dict,
    doctor_user: dict,
    monday_schedule: dict,
    next_monday,
) -> None:
    """Patients book through the API and get a pending request back."""
    response = await client.post(
        "/api/v1/appointments/request",
        json={
            "doctor_id": str(doctor_user["id"]),
            "requested_date": next_monday.isoformat(),
            "requested_time": "10:00",
            "reason": "Regular checkup",
        },
        headers=patient_headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending"
    assert data["priority"] == "normal"
    assert data["requested_time"] == "10:00"

    response = await client.post(
        "/api/v1/appointments/request",
        json={
            "doctor_id": str(doctor_user["id"]),
            "requested_date": next_monday.isoformat(),
            "requested_time": "10:15",
            "reason": "Second opinion",
        },
        headers=patient_headers,
    )

    assert response.status_code == 409
    assert response.json()["error"] == "ConflictException"


@pytest.mark.asyncio
async def test_request_endpoint_validates_time_format(
    client: AsyncClient,
    patient_headers: dict,
    doctor_user: dict,
    next_monday,
) -> None:
    """Malformed times never reach the service."""
    response = await client.post(
        "/api/v1/appointments/request",
        json={
            "doctor_id": str(doctor_user["id"]),
            "requested_date": next_monday.isoformat(),
            "requested_time": "10am",
            "reason": "Checkup",
        },
        headers=patient_headers,
    )

    assert response.status_code == 422
    data = response.json()
    assert data["error"] == "ValidationError"
    assert data["code"] == "validation_error"


@pytest.mark.asyncio
async def test_doctors_cannot_request_appointments(
    client: AsyncClient,
    doctor_headers: dict,
    doctor_user: dict,
    next_monday,
) -> None:
    """Booking is a patient action."""
    response = await client.post(
        "/api/v1/appointments/request",
        json={
            "doctor_id": str(doctor_user["id"]),
            "requested_date": next_monday.isoformat(),
            "requested_time": "10:00",
            "reason": "Checkup",
        },
        headers=doctor_headers,
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_decide_endpoint_returns_encounter(
    client: AsyncClient,
    doctor_headers: dict,
    patient_headers: dict,
    monday_schedule: dict,
    make_booking,
    next_monday,
) -> None:
    """Confirmation through the API embeds the encounter; re-confirming is a 409."""
    booking = await make_booking(next_monday, "11:00")

    response = await client.patch(
        f"/api/v1/appointments/{booking['id']}/status",
        json={"status": "confirmed"},
        headers=doctor_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "confirmed"
    assert data["encounter"]["appointment_id"] == str(booking["id"])

    response = await client.patch(
        f"/api/v1/appointments/{booking['id']}/status",
        json={"status": "confirmed"},
        headers=doctor_headers,
    )
    assert response.status_code == 409

    response = await client.get(f"/api/v1/appointments/{booking['id']}", headers=patient_headers)
    assert response.status_code == 200
    assert response.json()["encounter"]["code"] == data["encounter"]["code"]


@pytest.mark.asyncio
async def test_list_my_appointments(
    client: AsyncClient,
    patient_headers: dict,
    other_patient_headers: dict,
    doctor_headers: dict,
    monday_schedule: dict,
    make_booking,
    next_monday,
) -> None:
    """Patients and doctors each see their own side of the bookings."""
    await make_booking(next_monday, "10:00")
    await make_booking(next_monday, "11:00", status="confirmed")

    response = await client.get("/api/v1/appointments/my-appointments", headers=patient_headers)
    assert response.status_code == 200
    assert response.json()["total"] == 2

    response = await client.get(
        "/api/v1/appointments/my-appointments",
        params={"status": "confirmed"},
        headers=doctor_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["items"][0]["requested_time"] == "11:00"

    response = await client.get(
        "/api/v1/appointments/my-appointments", headers=other_patient_headers
    )
    assert response.json()["total"] == 0


@pytest.mark.asyncio
async def test_list_my_appointments_is_limited_to_participants(
    client: AsyncClient,
    admin_headers: dict,
    other_patient_user: dict,
    monday_schedule: dict,
    make_booking,
    next_monday,
) -> None:
    """An admin has no bookings of their own and gets a 403, not everyone's."""
    await make_booking(
        next_monday, "10:00", status="confirmed", patient_id=other_patient_user["id"]
    )

    response = await client.get("/api/v1/appointments/my-appointments", headers=admin_headers)

    assert response.status_code == 403
    assert "items" not in response.json()


@pytest.mark.asyncio
async def test_list_appointments_refuses_non_participants(
    db_session: AsyncSession,
    admin_user: dict,
    monday_schedule: dict,
    make_booking,
    next_monday,
) -> None:
    """The service resolves the requester's role itself and never lists unfiltered."""
    await make_booking(next_monday, "10:00")
    service = AppointmentService(db_session)

    with pytest.raises(ForbiddenException):
        await service.list_appointments(admin_user["id"], AppointmentFilters())

    with pytest.raises(NotFoundException):
        await service.list_appointments(uuid4(), AppointmentFilters())


@pytest.mark.asyncio
async def test_list_appointments_by_role(
    db_session: AsyncSession,
    patient_user: dict,
    doctor_user: dict,
    other_patient_user: dict,
    monday_schedule: dict,
    make_booking,
    next_monday,
) -> None:
    """Patients and doctors are told apart from their stored role."""
    await make_booking(next_monday, "10:00")
    await make_booking(next_monday, "11:00", patient_id=other_patient_user["id"])
    service = AppointmentService(db_session)

    assert (await service.list_appointments(patient_user["id"], AppointmentFilters())).total == 1
    assert (await service.list_appointments(doctor_user["id"], AppointmentFilters())).total == 2


@pytest.mark.asyncio
async def test_get_appointment_access_denied(
    client: AsyncClient,
    other_patient_headers: dict,
    monday_schedule: dict,
    make_booking,
    next_monday,
) -> None:
    """Outsiders get a 403 with the authorization error code."""
    booking = await make_booking(next_monday, "10:00")

    response = await client.get(
        f"/api/v1/appointments/{booking['id']}", headers=other_patient_headers
    )

    assert response.status_code == 403
    assert response.json()["code"] == "authorization_error"


@pytest.mark.asyncio
async def test_cancel_endpoint(
    client: AsyncClient,
    patient_headers: dict,
    monday_schedule: dict,
    make_booking,
    next_monday,
) -> None:
    """Cancellation accepts an optional reason."""
    booking = await make_booking(next_monday, "10:00")

    response = await client.patch(
        f"/api/v1/appointments/{booking['id']}/cancel",
        json={"reason": "Travelling"},
        headers=patient_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "cancelled"
    assert data["notes"] == "Travelling"


@pytest.mark.asyncio
async def test_list_doctors(
    client: AsyncClient,
    patient_headers: dict,
    doctor_user: dict,
) -> None:
    """Doctors in the caller's organization are listed and searchable."""
    response = await client.get("/api/v1/appointments/doctors", headers=patient_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["items"][0]["id"] == str(doctor_user["id"])

    response = await client.get(
        "/api/v1/appointments/doctors",
        params={"search": "cardio"},
        headers=patient_headers,
    )
    assert response.json()["total"] == 0


@pytest.mark.asyncio
async def test_unauthorized_access(client: AsyncClient) -> None:
    """Test accessing protected endpoint without authentication."""
    response = await client.get("/api/v1/appointments/my-appointments")
    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_current_user_profile(
    client: AsyncClient,
    doctor_headers: dict,
    doctor_user: dict,
) -> None:
    """The token's user is returned with their role."""
    response = await client.get("/api/v1/users/me", headers=doctor_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == str(doctor_user["id"])
    assert data["role"] == "doctor"
