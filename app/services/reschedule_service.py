"""Reschedule proposals against confirmed appointments."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from app.core.scheduling import parse_date, parse_time
from app.database import transaction
from app.models.appointments import appointment_requests, reschedule_requests
from app.schemas.appointments import (
    CLOSED_STATUSES,
    AppointmentStatus,
    ProposedBy,
    RescheduleCreate,
    RescheduleDecision,
    RescheduleResponse,
    RescheduleStatus,
)
from app.schemas.notifications import NotificationType
from app.services.audit_service import AuditService
from app.services.notification_service import NotificationService

logger = structlog.get_logger(__name__)


def proposal_payload(proposal: dict[str, Any]) -> dict[str, Any]:
    """Template values describing a reschedule proposal."""
    return {
        "reschedule_id": str(proposal["id"]),
        "appointment_id": str(proposal["appointment_id"]),
        "date": proposal["current_date"].isoformat(),
        "time": proposal["current_time"],
        "new_date": proposal["new_date"].isoformat(),
        "new_time": proposal["new_time"],
    }


class RescheduleService:
    """Service for proposing and resolving reschedules."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def propose(
        self,
        appointment_id: UUID,
        actor_id: UUID,
        data: RescheduleCreate,
    ) -> RescheduleResponse:
        """
        Propose a new slot for a confirmed appointment.

        The appointment's current slot is snapshotted on the proposal.

        Args:
            appointment_id: Appointment ID
            actor_id: Patient or doctor on the appointment
            data: Proposed date and time with optional reason and notes

        Returns:
            Pending reschedule request

        Raises:
            ValidationException: If the proposed date or time is malformed
            NotFoundException: If the appointment does not exist
            ForbiddenException: If the actor is not on the appointment
            ConflictException: If the appointment is not confirmed
        """
        new_date = parse_date(data.new_date, field="new_date")
        parse_time(data.new_time, field="new_time")

        async with transaction(self.db, "Failed to create reschedule request"):
            appointment = await self._load_appointment(appointment_id)

            if actor_id == appointment["patient_id"]:
                proposed_by = ProposedBy.PATIENT
            elif actor_id == appointment["doctor_id"]:
                proposed_by = ProposedBy.DOCTOR
            else:
                raise ForbiddenException("Access denied to this appointment")

            if appointment["status"] != AppointmentStatus.CONFIRMED.value:
                raise ConflictException("Can only reschedule confirmed appointments")

            stmt = (
                insert(reschedule_requests)
                .values(
                    appointment_id=appointment_id,
                    requested_by=actor_id,
                    requested_by_role=proposed_by.value,
                    current_date=appointment["requested_date"],
                    current_time=appointment["requested_time"],
                    new_date=new_date,
                    new_time=data.new_time,
                    reason=data.reason,
                    notes=data.notes,
                    proposed_by=proposed_by.value,
                    status=RescheduleStatus.PENDING.value,
                )
                .returning(reschedule_requests)
            )
            result = await self.db.execute(stmt)
            proposal = dict(result.mappings().first())

        logger.info(
            "reschedule_proposed",
            reschedule_id=str(proposal["id"]),
            appointment_id=str(appointment_id),
            proposed_by=proposed_by.value,
        )

        await AuditService.record(
            self.db,
            actor_id=actor_id,
            action="REQUEST_RESCHEDULE",
            resource_type="RESCHEDULE_REQUEST",
            resource_id=proposal["id"],
            metadata=proposal_payload(proposal),
            description=f"Reschedule requested for appointment {appointment_id}",
        )
        other_party = (
            appointment["doctor_id"]
            if proposed_by == ProposedBy.PATIENT
            else appointment["patient_id"]
        )
        await NotificationService.notify(
            self.db,
            other_party,
            NotificationType.RESCHEDULE_REQUEST,
            proposal_payload(proposal),
        )

        return RescheduleResponse.model_validate(proposal)

    async def resolve(
        self,
        reschedule_id: UUID,
        actor_id: UUID,
        data: RescheduleDecision,
    ) -> RescheduleResponse:
        """
        Approve or reject a pending reschedule proposal.

        Either party on the appointment may resolve it, not only the proposer.
        Approval moves the appointment to the proposed slot and marks it
        ``rescheduled`` in the same transaction; rejection leaves it untouched.

        Args:
            reschedule_id: Reschedule request ID
            actor_id: Patient or doctor on the parent appointment
            data: ``approved`` or ``rejected`` with optional notes

        Returns:
            The resolved reschedule request

        Raises:
            ValidationException: If the status is not approved or rejected
            NotFoundException: If the reschedule request does not exist
            ForbiddenException: If the actor is not on the parent appointment
            ConflictException: If the proposal was already resolved or the
                appointment was cancelled or rejected meanwhile
        """
        if data.status == RescheduleStatus.PENDING:
            raise ValidationException("Status must be approved or rejected", fields=["status"])

        async with transaction(self.db, "Failed to update reschedule request"):
            proposal = await self._load_proposal(reschedule_id)
            appointment = await self._load_appointment(proposal["appointment_id"])

            if actor_id not in (appointment["patient_id"], appointment["doctor_id"]):
                raise ForbiddenException(
                    "You do not have permission to update this reschedule request"
                )

            if proposal["status"] != RescheduleStatus.PENDING.value:
                raise ConflictException(f"Reschedule request is already {proposal['status']}")

            if appointment["status"] in CLOSED_STATUSES:
                raise ConflictException(f"Appointment is {appointment['status']}")

            now = datetime.now(UTC)
            values: dict[str, Any] = {"status": data.status.value, "resolved_at": now}
            if data.notes:
                values["notes"] = data.notes

            result = await self.db.execute(
                update(reschedule_requests)
                .where(reschedule_requests.c.id == reschedule_id)
                .values(**values)
                .returning(reschedule_requests)
            )
            proposal = dict(result.mappings().first())

            if data.status == RescheduleStatus.APPROVED:
                await self.db.execute(
                    update(appointment_requests)
                    .where(appointment_requests.c.id == appointment["id"])
                    .values(
                        requested_date=proposal["new_date"],
                        requested_time=proposal["new_time"],
                        status=AppointmentStatus.RESCHEDULED.value,
                        updated_at=now,
                    )
                )

        logger.info(
            "reschedule_resolved",
            reschedule_id=str(reschedule_id),
            appointment_id=str(appointment["id"]),
            status=data.status.value,
        )

        await AuditService.record(
            self.db,
            actor_id=actor_id,
            action="UPDATE_RESCHEDULE_STATUS",
            resource_type="RESCHEDULE_REQUEST",
            resource_id=reschedule_id,
            metadata={"status": data.status.value, **proposal_payload(proposal)},
            description=f"Reschedule request {reschedule_id} {data.status.value}",
        )

        if data.status == RescheduleStatus.APPROVED:
            for participant in (appointment["patient_id"], appointment["doctor_id"]):
                await NotificationService.notify(
                    self.db,
                    participant,
                    NotificationType.APPOINTMENT_RESCHEDULED,
                    proposal_payload(proposal),
                )
        else:
            await NotificationService.notify(
                self.db,
                proposal["requested_by"],
                NotificationType.RESCHEDULE_REJECTED,
                proposal_payload(proposal),
            )

        return RescheduleResponse.model_validate(proposal)

    async def _load_appointment(self, appointment_id: UUID) -> dict[str, Any]:
        """Load and lock the parent appointment."""
        stmt = (
            select(appointment_requests)
            .where(appointment_requests.c.id == appointment_id)
            .with_for_update()
        )
        row = (await self.db.execute(stmt)).mappings().first()

        if not row:
            raise NotFoundException("Appointment not found")

        return dict(row)

    async def _load_proposal(self, reschedule_id: UUID) -> dict[str, Any]:
        """Load and lock a reschedule request."""
        stmt = (
            select(reschedule_requests)
            .where(reschedule_requests.c.id == reschedule_id)
            .with_for_update()
        )
        row = (await self.db.execute(stmt)).mappings().first()

        if not row:
            raise NotFoundException("Reschedule request not found")

        return dict(row)
