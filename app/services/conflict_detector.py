"""Booking proximity checks for a doctor's calendar."""

from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.scheduling import day_bounds, day_name, minutes_apart, on_date, parse_time
from app.models.appointments import appointment_requests
from app.schemas.appointments import LIVE_STATUSES


class ConflictDetector:
    """Detects bookings that sit too close to each other.

    Every appointment is assumed to last one slot width, so two live bookings
    conflict when their start times are strictly less than one slot apart.
    Only pending and confirmed bookings hold a slot.
    """

    def __init__(self, db: AsyncSession, slot_minutes: int | None = None):
        """Initialize detector with database session and slot width."""
        self.db = db
        self.slot_minutes = slot_minutes or settings.appointment_slot_minutes

    async def live_bookings_on(self, doctor_id: UUID, day: date) -> list[dict]:
        """Pending and confirmed bookings for a doctor on one calendar day."""
        start, end = day_bounds(day)
        stmt = select(appointment_requests).where(
            and_(
                appointment_requests.c.doctor_id == doctor_id,
                appointment_requests.c.requested_date >= start,
                appointment_requests.c.requested_date < end,
                appointment_requests.c.status.in_(LIVE_STATUSES),
            )
        )
        result = await self.db.execute(stmt)
        return [dict(row) for row in result.mappings().all()]

    async def has_conflict(
        self,
        doctor_id: UUID,
        requested_date: date,
        requested_time: str,
    ) -> bool:
        """
        Check whether a candidate slot is too close to an existing booking.

        Args:
            doctor_id: Doctor whose calendar is checked
            requested_date: Candidate calendar date
            requested_time: Candidate ``HH:MM`` time

        Returns:
            True if any live booking starts less than one slot width away
        """
        candidate = on_date(requested_date, parse_time(requested_time))

        for booking in await self.live_bookings_on(doctor_id, requested_date):
            existing = on_date(booking["requested_date"], parse_time(booking["requested_time"]))
            if minutes_apart(candidate, existing) < self.slot_minutes:
                return True

        return False

    async def upcoming_on_weekday(
        self,
        doctor_id: UUID,
        day_of_week: str,
        today: date | None = None,
        window_days: int | None = None,
    ) -> list[dict]:
        """
        Live bookings falling on a weekday within the forward window.

        Args:
            doctor_id: Doctor whose bookings are listed
            day_of_week: Weekday name, e.g. ``Monday``
            today: First day of the window, defaults to the current date
            window_days: Window length, defaults to the configured withdrawal window

        Returns:
            Bookings ordered by date and time
        """
        start = today or date.today()
        end = start + timedelta(days=window_days or settings.withdrawal_window_days)

        stmt = (
            select(appointment_requests)
            .where(
                and_(
                    appointment_requests.c.doctor_id == doctor_id,
                    appointment_requests.c.requested_date >= start,
                    appointment_requests.c.requested_date < end,
                    appointment_requests.c.status.in_(LIVE_STATUSES),
                )
            )
            .order_by(
                appointment_requests.c.requested_date.asc(),
                appointment_requests.c.requested_time.asc(),
            )
        )
        result = await self.db.execute(stmt)

        # Weekday filter runs in Python, not SQL
        return [
            dict(row)
            for row in result.mappings().all()
            if day_name(row["requested_date"]) == day_of_week
        ]
