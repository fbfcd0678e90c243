"""Doctor weekly availability: storage and slot checks."""

from datetime import UTC, date, datetime
from uuid import UUID

import structlog
from sqlalchemy import and_, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictException
from app.core.scheduling import DAY_NAMES, day_name, on_date, parse_time
from app.database import transaction
from app.models.schedules import doctor_schedules
from app.schemas.availability import (
    DaySchedule,
    WeeklyAvailabilityResponse,
    WeeklyAvailabilityUpdate,
    WeeklyScheduleEntry,
)
from app.services.audit_service import AuditService
from app.services.conflict_detector import ConflictDetector

logger = structlog.get_logger(__name__)


class AvailabilityService:
    """Service for a doctor's recurring weekly schedule."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def get_day_schedule(self, doctor_id: UUID, day_of_week: str) -> DaySchedule:
        """
        Get the schedule row for one weekday.

        Returns:
            The stored schedule, or a closed placeholder when the doctor never
            configured this weekday
        """
        stmt = select(doctor_schedules).where(
            and_(
                doctor_schedules.c.doctor_id == doctor_id,
                doctor_schedules.c.day_of_week == day_of_week,
            )
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()

        if not row:
            return DaySchedule.closed(doctor_id, day_of_week)

        return DaySchedule.model_validate(dict(row))

    async def get_weekly_schedule(self, doctor_id: UUID) -> WeeklyAvailabilityResponse:
        """Get all seven weekdays, Monday first, with placeholders for missing days."""
        stmt = select(doctor_schedules).where(doctor_schedules.c.doctor_id == doctor_id)
        result = await self.db.execute(stmt)
        stored = {row["day_of_week"]: dict(row) for row in result.mappings().all()}

        days = [
            DaySchedule.model_validate(stored[name])
            if name in stored
            else DaySchedule.closed(doctor_id, name)
            for name in DAY_NAMES
        ]
        return WeeklyAvailabilityResponse(doctor_id=doctor_id, days=days)

    async def is_available(
        self,
        doctor_id: UUID,
        requested_date: date,
        requested_time: str | None = None,
    ) -> bool:
        """
        Check whether a doctor works at a given date and time.

        The stored window is projected onto the requested date and the check
        is inclusive at both ends. A date-only request is available when the
        weekday is enabled at all.

        Args:
            doctor_id: Doctor ID
            requested_date: Calendar date
            requested_time: Optional ``HH:MM`` time

        Returns:
            True if the instant falls inside an enabled weekly window
        """
        schedule = await self.get_day_schedule(doctor_id, day_name(requested_date))

        if not schedule.is_available or schedule.is_placeholder:
            return False

        if requested_time is None:
            return True

        if schedule.start_time is None or schedule.end_time is None:
            return False

        candidate = on_date(requested_date, parse_time(requested_time))
        window_start = on_date(requested_date, schedule.start_time)
        window_end = on_date(requested_date, schedule.end_time)

        return window_start <= candidate <= window_end

    async def update_weekly_availability(
        self,
        doctor_id: UUID,
        data: WeeklyAvailabilityUpdate,
    ) -> WeeklyAvailabilityResponse:
        """
        Upsert a doctor's weekday windows.

        Disabling a weekday that still has pending or confirmed bookings in the
        withdrawal window is refused as a whole; nothing is written.

        Args:
            doctor_id: Doctor ID
            data: Weekday entries to upsert

        Returns:
            The full weekly schedule after the update

        Raises:
            ConflictException: If a weekday being disabled has upcoming bookings
        """
        detector = ConflictDetector(self.db)
        conflicts = []

        for entry in data.days:
            if entry.is_available:
                continue
            affected = await detector.upcoming_on_weekday(doctor_id, entry.day_of_week.value)
            if affected:
                conflicts.append(
                    {
                        "day_of_week": entry.day_of_week.value,
                        "count": len(affected),
                        "appointment_ids": [str(booking["id"]) for booking in affected],
                    }
                )

        if conflicts:
            logger.info(
                "availability_update_refused",
                doctor_id=str(doctor_id),
                conflicts=conflicts,
            )
            raise ConflictException(
                "Cannot disable days with upcoming appointments; reschedule them first",
                details={"conflicts": conflicts},
            )

        async with transaction(self.db, "Failed to update availability"):
            for entry in data.days:
                await self.upsert_day(doctor_id, entry)

        logger.info(
            "availability_updated",
            doctor_id=str(doctor_id),
            days=[entry.day_of_week.value for entry in data.days],
        )

        await AuditService.record(
            self.db,
            actor_id=doctor_id,
            action="UPDATE_WEEKLY_AVAILABILITY",
            resource_type="DOCTOR_SCHEDULE",
            resource_id=doctor_id,
            metadata={"days": [entry.model_dump(mode="json") for entry in data.days]},
            description="Weekly availability updated",
        )

        return await self.get_weekly_schedule(doctor_id)

    async def upsert_day(self, doctor_id: UUID, entry: WeeklyScheduleEntry) -> None:
        """
        Insert or update one weekday row without committing.

        A disabled entry without times keeps the stored window.
        """
        values: dict = {"is_available": entry.is_available}
        if entry.start_time is not None:
            values["start_time"] = entry.start_time
        if entry.end_time is not None:
            values["end_time"] = entry.end_time

        stmt = select(doctor_schedules.c.id).where(
            and_(
                doctor_schedules.c.doctor_id == doctor_id,
                doctor_schedules.c.day_of_week == entry.day_of_week.value,
            )
        )
        existing_id = (await self.db.execute(stmt)).scalar()

        if existing_id is None:
            await self.db.execute(
                insert(doctor_schedules).values(
                    doctor_id=doctor_id,
                    day_of_week=entry.day_of_week.value,
                    **values,
                )
            )
        else:
            await self.db.execute(
                update(doctor_schedules)
                .where(doctor_schedules.c.id == existing_id)
                .values(updated_at=datetime.now(UTC), **values)
            )
