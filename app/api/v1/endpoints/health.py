"""Health check endpoints."""

from fastapi import APIRouter, status
from pydantic import BaseModel

from app.config import settings
from app.database import check_database_connection, get_schema_revision

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str


class SchedulingSettings(BaseModel):
    """Scheduling rules the running instance enforces."""

    slot_minutes: int
    withdrawal_window_days: int
    encounter_code_prefix: str


class DetailedHealthResponse(BaseModel):
    """Detailed health check response model."""

    status: str
    version: str
    environment: str
    database: str
    schema_revision: str | None
    scheduling: SchedulingSettings


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Basic health check",
)
async def health_check() -> HealthResponse:
    """Liveness only; touches nothing."""
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Detailed health check",
)
async def detailed_health_check() -> DetailedHealthResponse:
    """
    Database reachability, applied migration and active scheduling rules.

    The instance is ``degraded`` when the database is unreachable or no
    migration has been applied to it.

    Returns:
        Detailed health status
    """
    db_healthy = await check_database_connection()
    revision = await get_schema_revision() if db_healthy else None

    return DetailedHealthResponse(
        status="healthy" if db_healthy and revision else "degraded",
        version=settings.app_version,
        environment=settings.environment,
        database="healthy" if db_healthy else "unhealthy",
        schema_revision=revision,
        scheduling=SchedulingSettings(
            slot_minutes=settings.appointment_slot_minutes,
            withdrawal_window_days=settings.withdrawal_window_days,
            encounter_code_prefix=settings.encounter_code_prefix,
        ),
    )
