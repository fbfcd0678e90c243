"""Appointment request, reschedule request and encounter tables using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Table,
    Text,
    Uuid,
    func,
)

from app.models.base import metadata

# Appointment requests
appointment_requests = Table(
    "appointment_requests",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    # Ownership / references
    Column("patient_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("doctor_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    # Requested slot, local to the doctor
    Column("requested_date", Date, nullable=False),
    Column("requested_time", String(5), nullable=False),
    Column("reason", Text, nullable=False),
    Column("priority", String(10), nullable=False, server_default="normal"),
    # Status management
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("notes", Text, nullable=True),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("cancelled_at", DateTime(timezone=True), nullable=True),
    CheckConstraint(
        "status IN ('pending', 'confirmed', 'rescheduled', 'cancelled', 'rejected')",
        name="appointment_requests_status_check",
    ),
    CheckConstraint(
        "priority IN ('low', 'normal', 'high', 'urgent')",
        name="appointment_requests_priority_check",
    ),
    Index("idx_appointment_requests_doctor_date", "doctor_id", "requested_date"),
    Index("idx_appointment_requests_patient", "patient_id"),
)

# Reschedule proposals, one row per proposal against a single appointment request
reschedule_requests = Table(
    "reschedule_requests",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "appointment_id",
        Uuid,
        ForeignKey("appointment_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("requested_by", Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("requested_by_role", String(20), nullable=False),
    # Snapshot of the booking at proposal time
    Column("current_date", Date, nullable=False),
    Column("current_time", String(5), nullable=False),
    # Proposed slot
    Column("new_date", Date, nullable=False),
    Column("new_time", String(5), nullable=False),
    Column("reason", Text, nullable=True),
    Column("notes", Text, nullable=True),
    Column("proposed_by", String(10), nullable=False),
    Column("status", String(10), nullable=False, server_default="pending"),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("resolved_at", DateTime(timezone=True), nullable=True),
    CheckConstraint(
        "status IN ('pending', 'approved', 'rejected')",
        name="reschedule_requests_status_check",
    ),
    CheckConstraint(
        "proposed_by IN ('patient', 'doctor')",
        name="reschedule_requests_proposed_by_check",
    ),
)

# Clinical encounters, materialized when a request is confirmed
encounters = Table(
    "encounters",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("code", String(16), nullable=False, unique=True),
    Column(
        "appointment_id",
        Uuid,
        ForeignKey("appointment_requests.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    ),
    Column("doctor_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("patient_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("start_time", DateTime(timezone=False), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)
