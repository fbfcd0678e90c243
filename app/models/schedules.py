"""Doctor weekly schedule table using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    String,
    Table,
    Time,
    UniqueConstraint,
    Uuid,
    func,
    text,
)

from app.models.base import metadata

# One row per (doctor, weekday). Times are day-agnostic.
doctor_schedules = Table(
    "doctor_schedules",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "doctor_id",
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("day_of_week", String(10), nullable=False),
    Column("start_time", Time, nullable=True),
    Column("end_time", Time, nullable=True),
    Column("is_available", Boolean, nullable=False, server_default=text("true")),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    UniqueConstraint("doctor_id", "day_of_week", name="doctor_schedules_doctor_day_key"),
    CheckConstraint(
        "day_of_week IN ('Monday', 'Tuesday', 'Wednesday', 'Thursday', "
        "'Friday', 'Saturday', 'Sunday')",
        name="doctor_schedules_day_check",
    ),
)
