"""Database models."""

from app.models.appointments import appointment_requests, encounters, reschedule_requests
from app.models.audit_logs import audit_logs
from app.models.base import metadata
from app.models.notifications import notifications
from app.models.schedules import doctor_schedules
from app.models.users import users

__all__ = [
    "appointment_requests",
    "audit_logs",
    "doctor_schedules",
    "encounters",
    "metadata",
    "notifications",
    "reschedule_requests",
    "users",
]
