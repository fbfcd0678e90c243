"""Audit trail table using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Index, String, Table, Text, Uuid, func

from app.models.base import metadata

audit_logs = Table(
    "audit_logs",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    # No FK: entries outlive the users they mention
    Column("user_id", Uuid, nullable=True),
    Column("action", String(64), nullable=False),
    Column("category", String(32), nullable=False, server_default="USER_ACTIVITY"),
    Column("level", String(16), nullable=False, server_default="INFO"),
    Column("description", Text, nullable=True),
    Column("resource_type", String(64), nullable=True),
    Column("resource_id", String(64), nullable=True),
    Column("details", JSON, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Index("idx_audit_logs_resource", "resource_type", "resource_id"),
    Index("idx_audit_logs_user_id", "user_id"),
)
