"""Doctor-initiated withdrawal of a weekday with bulk rescheduling."""

from datetime import UTC, datetime
from uuid import UUID

import structlog
from sqlalchemy import insert, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.scheduling import normalize_day_name, parse_time
from app.database import transaction
from app.models.appointments import appointment_requests, reschedule_requests
from app.schemas.appointments import (
    AppointmentStatus,
    DayRescheduleRequest,
    DayRescheduleResponse,
    ProposedBy,
    RescheduleResponse,
    RescheduleStatus,
)
from app.schemas.availability import WeeklyScheduleEntry
from app.schemas.notifications import NotificationType
from app.schemas.users import UserRole
from app.services.audit_service import AuditService
from app.services.availability_service import AvailabilityService
from app.services.conflict_detector import ConflictDetector
from app.services.notification_service import NotificationService
from app.services.reschedule_service import proposal_payload
from app.services.user_service import UserService

logger = structlog.get_logger(__name__)


class DayWithdrawalService:
    """Service for withdrawing a weekday that already has bookings."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def reschedule_day(
        self,
        doctor_id: UUID,
        data: DayRescheduleRequest,
    ) -> DayRescheduleResponse:
        """
        Raise a doctor proposal for every upcoming booking on a weekday.

        Each pending or confirmed booking on the weekday inside the withdrawal
        window gets one pending reschedule request and is marked
        ``rescheduled`` directly, without going through approval. Without a
        blanket replacement the proposal repeats the booking's own slot and is
        left for manual adjustment. The whole batch, including disabling the
        weekday, is written in one transaction.

        Args:
            doctor_id: Doctor withdrawing the day
            data: Weekday, reason and optional replacement date/time

        Returns:
            Affected bookings and the proposals raised for them

        Raises:
            ValidationException: If the weekday or replacement time is malformed
            NotFoundException: If the doctor does not exist or is inactive
        """
        day_of_week = normalize_day_name(data.day_of_week)
        if data.new_time is not None:
            parse_time(data.new_time, field="new_time")

        await UserService.resolve_provider(self.db, doctor_id)

        proposals: list[dict] = []
        async with transaction(self.db, "Failed to reschedule day"):
            detector = ConflictDetector(self.db)
            affected = await detector.upcoming_on_weekday(doctor_id, day_of_week)
            now = datetime.now(UTC)

            for booking in affected:
                result = await self.db.execute(
                    insert(reschedule_requests)
                    .values(
                        appointment_id=booking["id"],
                        requested_by=doctor_id,
                        requested_by_role=UserRole.DOCTOR.value,
                        current_date=booking["requested_date"],
                        current_time=booking["requested_time"],
                        new_date=data.new_date or booking["requested_date"],
                        new_time=data.new_time or booking["requested_time"],
                        reason=data.reason,
                        proposed_by=ProposedBy.DOCTOR.value,
                        status=RescheduleStatus.PENDING.value,
                    )
                    .returning(reschedule_requests)
                )
                proposals.append(dict(result.mappings().first()))

                await self.db.execute(
                    update(appointment_requests)
                    .where(appointment_requests.c.id == booking["id"])
                    .values(status=AppointmentStatus.RESCHEDULED.value, updated_at=now)
                )

            if data.disable_day:
                await AvailabilityService(self.db).upsert_day(
                    doctor_id,
                    WeeklyScheduleEntry(day_of_week=day_of_week, is_available=False),
                )

        logger.info(
            "day_rescheduled",
            doctor_id=str(doctor_id),
            day_of_week=day_of_week,
            affected_count=len(affected),
            day_disabled=data.disable_day,
        )

        await AuditService.record(
            self.db,
            actor_id=doctor_id,
            action="RESCHEDULE_DAY",
            resource_type="DOCTOR_SCHEDULE",
            resource_id=doctor_id,
            metadata={
                "day_of_week": day_of_week,
                "reason": data.reason,
                "appointment_ids": [str(booking["id"]) for booking in affected],
                "new_date": data.new_date.isoformat() if data.new_date else None,
                "new_time": data.new_time,
            },
            description=f"Appointments on {day_of_week} rescheduled",
        )

        for booking, proposal in zip(affected, proposals, strict=True):
            await NotificationService.notify(
                self.db,
                booking["patient_id"],
                NotificationType.APPOINTMENT_RESCHEDULED,
                {**proposal_payload(proposal), "reason": data.reason},
            )

        return DayRescheduleResponse(
            day_of_week=day_of_week,
            affected_count=len(affected),
            appointment_ids=[booking["id"] for booking in affected],
            reschedule_requests=[RescheduleResponse.model_validate(p) for p in proposals],
            day_disabled=data.disable_day,
        )
