"""Appointment request lifecycle: booking, doctor decision and cancellation."""

import secrets
import string
from datetime import UTC, date, datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from app.core.scheduling import on_date, parse_date, parse_time
from app.database import transaction
from app.models.appointments import appointment_requests, encounters, reschedule_requests
from app.schemas.appointments import (
    CLOSED_STATUSES,
    AppointmentDecision,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentRequestCreate,
    AppointmentResponse,
    AppointmentStatus,
    RescheduleStatus,
)
from app.schemas.notifications import NotificationType
from app.schemas.users import UserRole
from app.services.audit_service import AuditService
from app.services.availability_service import AvailabilityService
from app.services.conflict_detector import ConflictDetector
from app.services.notification_service import NotificationService
from app.services.user_service import UserService

logger = structlog.get_logger(__name__)

# Statuses a doctor may move a pending request into
DECISIONS = (
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.REJECTED,
    AppointmentStatus.CANCELLED,
)

ENCOUNTER_CODE_ALPHABET = string.ascii_uppercase + string.digits
ENCOUNTER_CODE_ATTEMPTS = 5

DECISION_NOTIFICATIONS = {
    AppointmentStatus.CONFIRMED: NotificationType.APPOINTMENT_CONFIRMED,
    AppointmentStatus.REJECTED: NotificationType.APPOINTMENT_REJECTED,
    AppointmentStatus.CANCELLED: NotificationType.APPOINTMENT_CANCELLED,
}


def generate_encounter_code(
    requested_date: date,
    requested_time: str,
    prefix: str | None = None,
) -> str:
    """
    Build a human readable encounter code.

    Format is the prefix, the two-digit day of month, the two-digit hour and
    three random uppercase alphanumerics, e.g. ``CB2609X7K``.
    """
    prefix = settings.encounter_code_prefix if prefix is None else prefix
    hour = requested_time.split(":")[0].zfill(2)
    suffix = "".join(secrets.choice(ENCOUNTER_CODE_ALPHABET) for _ in range(3))
    return f"{prefix}{requested_date.day:02d}{hour}{suffix}"


def booking_payload(appointment: dict[str, Any]) -> dict[str, Any]:
    """Template values describing a booking."""
    return {
        "appointment_id": str(appointment["id"]),
        "date": appointment["requested_date"].isoformat(),
        "time": appointment["requested_time"],
    }


class AppointmentService:
    """Service for managing appointment requests."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def create_appointment(
        self,
        patient_id: UUID,
        data: AppointmentRequestCreate,
    ) -> AppointmentResponse:
        """
        Create a pending appointment request.

        Availability is checked before conflicts. The conflict check is
        repeated under a lock keyed by (doctor, date) in the same transaction
        as the insert.

        Args:
            patient_id: ID of the patient requesting the appointment
            data: Appointment request data

        Returns:
            Created appointment in ``pending`` status

        Raises:
            ValidationException: If the date or time is malformed
            NotFoundException: If the doctor does not exist or is inactive
            ConflictException: If the doctor is unavailable or the slot is taken
        """
        requested_date = parse_date(data.requested_date)
        parse_time(data.requested_time)

        await UserService.resolve_provider(self.db, data.doctor_id)

        availability = AvailabilityService(self.db)
        if not await availability.is_available(data.doctor_id, requested_date, data.requested_time):
            await self.db.rollback()
            raise ConflictException("Doctor is not available at the requested time")

        async with transaction(self.db, "Failed to create appointment request"):
            await self._lock_doctor_day(data.doctor_id, requested_date)

            detector = ConflictDetector(self.db)
            if await detector.has_conflict(data.doctor_id, requested_date, data.requested_time):
                raise ConflictException("The requested time conflicts with an existing appointment")

            stmt = (
                insert(appointment_requests)
                .values(
                    patient_id=patient_id,
                    doctor_id=data.doctor_id,
                    requested_date=requested_date,
                    requested_time=data.requested_time,
                    reason=data.reason,
                    priority=data.priority.value,
                    notes=data.notes,
                    status=AppointmentStatus.PENDING.value,
                )
                .returning(appointment_requests)
            )
            result = await self.db.execute(stmt)
            appointment = dict(result.mappings().first())

        logger.info(
            "appointment_created",
            appointment_id=str(appointment["id"]),
            doctor_id=str(data.doctor_id),
            requested_date=requested_date.isoformat(),
            requested_time=data.requested_time,
        )

        await AuditService.record(
            self.db,
            actor_id=patient_id,
            action="CREATE_APPOINTMENT_REQUEST",
            resource_type="APPOINTMENT_REQUEST",
            resource_id=appointment["id"],
            metadata={"doctor_id": str(data.doctor_id), **booking_payload(appointment)},
            description="Appointment request created",
        )
        await NotificationService.notify(
            self.db,
            data.doctor_id,
            NotificationType.APPOINTMENT_CREATED,
            booking_payload(appointment),
        )

        return AppointmentResponse.model_validate(appointment)

    async def decide_appointment(
        self,
        appointment_id: UUID,
        doctor_id: UUID,
        data: AppointmentDecision,
    ) -> AppointmentResponse:
        """
        Apply the doctor's decision to a pending request.

        Confirming writes the status change and the clinical encounter in one
        transaction. Only pending requests can be decided, so confirming twice
        is refused instead of creating a second encounter.

        Args:
            appointment_id: Appointment ID
            doctor_id: ID of the deciding doctor
            data: New status and optional notes

        Returns:
            Updated appointment, with its encounter when confirmed

        Raises:
            ValidationException: If the status is not a decision
            NotFoundException: If the appointment does not exist
            ForbiddenException: If the doctor does not own the appointment
            ConflictException: If the appointment is no longer pending
        """
        if data.status not in DECISIONS:
            raise ValidationException(
                f"Status must be one of: {', '.join(s.value for s in DECISIONS)}",
                fields=["status"],
            )

        encounter = None
        async with transaction(self.db, "Failed to update appointment status"):
            current = await self._load(appointment_id, for_update=True)

            if current["doctor_id"] != doctor_id:
                raise ForbiddenException("Only the assigned doctor can decide on this appointment")

            if current["status"] != AppointmentStatus.PENDING.value:
                raise ConflictException(f"Appointment is already {current['status']}")

            now = datetime.now(UTC)
            values: dict[str, Any] = {"status": data.status.value, "updated_at": now}
            if data.notes:
                values["notes"] = data.notes
            if data.status == AppointmentStatus.CANCELLED:
                values["cancelled_at"] = now

            stmt = (
                update(appointment_requests)
                .where(appointment_requests.c.id == appointment_id)
                .values(**values)
                .returning(appointment_requests)
            )
            result = await self.db.execute(stmt)
            appointment = dict(result.mappings().first())

            if data.status == AppointmentStatus.CONFIRMED:
                encounter = await self._materialize_encounter(appointment)

        logger.info(
            "appointment_decided",
            appointment_id=str(appointment_id),
            status=data.status.value,
            encounter_code=encounter["code"] if encounter else None,
        )

        await AuditService.record(
            self.db,
            actor_id=doctor_id,
            action="UPDATE_APPOINTMENT_STATUS",
            resource_type="APPOINTMENT_REQUEST",
            resource_id=appointment_id,
            metadata={"status": data.status.value},
            description=f"Appointment status updated to {data.status.value}",
        )
        await NotificationService.notify(
            self.db,
            appointment["patient_id"],
            DECISION_NOTIFICATIONS[data.status],
            booking_payload(appointment),
        )

        return AppointmentResponse.model_validate({**appointment, "encounter": encounter})

    async def cancel_appointment(
        self,
        appointment_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> AppointmentResponse:
        """
        Cancel an appointment on behalf of its patient or doctor.

        The reason is stored in ``notes``. An existing encounter is kept as a
        historical record.

        Raises:
            NotFoundException: If the appointment does not exist
            ForbiddenException: If the actor is neither the patient nor the doctor
            ConflictException: If the appointment is already cancelled or rejected
        """
        async with transaction(self.db, "Failed to cancel appointment"):
            current = await self._load(appointment_id, for_update=True)
            self._ensure_party(current, actor_id)

            if current["status"] in CLOSED_STATUSES:
                raise ConflictException(f"Appointment is already {current['status']}")

            now = datetime.now(UTC)
            values: dict[str, Any] = {
                "status": AppointmentStatus.CANCELLED.value,
                "updated_at": now,
                "cancelled_at": now,
            }
            if reason:
                values["notes"] = reason

            stmt = (
                update(appointment_requests)
                .where(appointment_requests.c.id == appointment_id)
                .values(**values)
                .returning(appointment_requests)
            )
            result = await self.db.execute(stmt)
            appointment = dict(result.mappings().first())

        logger.info(
            "appointment_cancelled",
            appointment_id=str(appointment_id),
            actor_id=str(actor_id),
        )

        await AuditService.record(
            self.db,
            actor_id=actor_id,
            action="CANCEL_APPOINTMENT",
            resource_type="APPOINTMENT_REQUEST",
            resource_id=appointment_id,
            metadata={"reason": reason},
            description="Appointment cancelled",
        )
        await NotificationService.notify(
            self.db,
            self._other_party(appointment, actor_id),
            NotificationType.APPOINTMENT_CANCELLED,
            {**booking_payload(appointment), "reason": reason or ""},
        )

        return AppointmentResponse.model_validate(appointment)

    async def get_appointment(self, appointment_id: UUID, user_id: UUID) -> AppointmentResponse:
        """
        Get an appointment with its encounter and reschedule history.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If the user is neither the patient nor the doctor
        """
        appointment = await self._load(appointment_id)
        self._ensure_party(appointment, user_id)

        encounter_result = await self.db.execute(
            select(encounters).where(encounters.c.appointment_id == appointment_id)
        )
        encounter = encounter_result.mappings().first()

        reschedule_result = await self.db.execute(
            select(reschedule_requests)
            .where(reschedule_requests.c.appointment_id == appointment_id)
            .order_by(reschedule_requests.c.created_at.desc())
        )

        return AppointmentResponse.model_validate(
            {
                **appointment,
                "encounter": dict(encounter) if encounter else None,
                "reschedule_requests": [dict(row) for row in reschedule_result.mappings().all()],
            }
        )

    async def list_appointments(
        self,
        user_id: UUID,
        filters: AppointmentFilters,
    ) -> AppointmentListResponse:
        """
        List a user's appointments with pending reschedule proposals attached.

        Patients see bookings they made, doctors see bookings made with them.

        Args:
            user_id: ID of requesting user
            filters: Filter and pagination parameters

        Returns:
            Paginated list of appointments, newest date first

        Raises:
            NotFoundException: If the user does not exist
            ForbiddenException: If the user is neither a patient nor a doctor
        """
        role = await UserService.resolve_role(self.db, user_id)
        if role == UserRole.PATIENT:
            conditions = [appointment_requests.c.patient_id == user_id]
        elif role == UserRole.DOCTOR:
            conditions = [appointment_requests.c.doctor_id == user_id]
        else:
            raise ForbiddenException("Only patients and doctors have appointments")

        if filters.status:
            conditions.append(appointment_requests.c.status == filters.status.value)

        count_stmt = select(func.count()).select_from(appointment_requests).where(and_(*conditions))
        total = (await self.db.execute(count_stmt)).scalar() or 0

        offset = (filters.page - 1) * filters.page_size
        stmt = (
            select(appointment_requests)
            .where(and_(*conditions))
            .order_by(
                appointment_requests.c.requested_date.desc(),
                appointment_requests.c.requested_time.desc(),
            )
            .limit(filters.page_size)
            .offset(offset)
        )
        rows = [dict(row) for row in (await self.db.execute(stmt)).mappings().all()]

        pending: dict[UUID, list[dict]] = {}
        if rows:
            reschedule_stmt = (
                select(reschedule_requests)
                .where(
                    and_(
                        reschedule_requests.c.appointment_id.in_([row["id"] for row in rows]),
                        reschedule_requests.c.status == RescheduleStatus.PENDING.value,
                    )
                )
                .order_by(reschedule_requests.c.created_at.desc())
            )
            for proposal in (await self.db.execute(reschedule_stmt)).mappings().all():
                pending.setdefault(proposal["appointment_id"], []).append(dict(proposal))

        items = [
            AppointmentResponse.model_validate(
                {**row, "reschedule_requests": pending.get(row["id"], [])}
            )
            for row in rows
        ]

        return AppointmentListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            items=items,
        )

    async def _load(self, appointment_id: UUID, for_update: bool = False) -> dict[str, Any]:
        """Load an appointment row, optionally locking it for the transaction."""
        stmt = select(appointment_requests).where(appointment_requests.c.id == appointment_id)
        if for_update:
            stmt = stmt.with_for_update()

        result = await self.db.execute(stmt)
        row = result.mappings().first()

        if not row:
            raise NotFoundException("Appointment not found")

        return dict(row)

    async def _lock_doctor_day(self, doctor_id: UUID, requested_date: date) -> None:
        """Serialize bookings for one doctor and day until the transaction ends."""
        conn = await self.db.connection()
        if conn.dialect.name != "postgresql":
            return

        key = f"appointment:{doctor_id}:{requested_date.isoformat()}"
        await self.db.execute(select(func.pg_advisory_xact_lock(func.hashtext(key))))

    async def _materialize_encounter(self, appointment: dict[str, Any]) -> dict[str, Any]:
        """Insert the clinical encounter for a confirmed appointment without committing."""
        code = await self._unused_encounter_code(appointment)

        stmt = (
            insert(encounters)
            .values(
                code=code,
                appointment_id=appointment["id"],
                doctor_id=appointment["doctor_id"],
                patient_id=appointment["patient_id"],
                start_time=on_date(
                    appointment["requested_date"],
                    parse_time(appointment["requested_time"]),
                ),
            )
            .returning(encounters)
        )
        result = await self.db.execute(stmt)
        return dict(result.mappings().first())

    async def _unused_encounter_code(self, appointment: dict[str, Any]) -> str:
        """Draw codes until one is not taken; the unique constraint has the final word."""
        code = ""
        for _ in range(ENCOUNTER_CODE_ATTEMPTS):
            code = generate_encounter_code(
                appointment["requested_date"],
                appointment["requested_time"],
            )
            taken = await self.db.execute(select(encounters.c.id).where(encounters.c.code == code))
            if taken.first() is None:
                return code

        logger.warning("encounter_code_attempts_exhausted", appointment_id=str(appointment["id"]))
        return code

    @staticmethod
    def _ensure_party(appointment: dict[str, Any], user_id: UUID) -> None:
        """Require the user to be the patient or the doctor on the appointment."""
        if user_id not in (appointment["patient_id"], appointment["doctor_id"]):
            raise ForbiddenException("Access denied to this appointment")

    @staticmethod
    def _other_party(appointment: dict[str, Any], user_id: UUID) -> UUID:
        """The participant who is not ``user_id``."""
        if user_id == appointment["patient_id"]:
            return appointment["doctor_id"]
        return appointment["patient_id"]
