"""User service: identity lookups for the scheduling core."""

from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundException
from app.models.users import users
from app.schemas.users import UserRole


class UserService:
    """Service for user operations."""

    @staticmethod
    async def get_user_by_id(db: AsyncSession, user_id: UUID) -> dict | None:
        """Get user by internal ID."""
        query = select(users).where(users.c.id == user_id)
        result = await db.execute(query)
        user = result.mappings().first()

        return dict(user) if user else None

    @staticmethod
    async def resolve_provider(db: AsyncSession, doctor_id: UUID) -> dict:
        """
        Resolve an active doctor.

        Raises:
            NotFoundException: If no active user with the doctor role has this ID
        """
        query = select(users).where(
            and_(
                users.c.id == doctor_id,
                users.c.role == UserRole.DOCTOR.value,
                users.c.is_active.is_(True),
            )
        )
        result = await db.execute(query)
        doctor = result.mappings().first()

        if not doctor:
            raise NotFoundException("Doctor not found")

        return dict(doctor)

    @staticmethod
    async def resolve_role(db: AsyncSession, user_id: UUID) -> UserRole:
        """
        Role of a requester.

        Raises:
            NotFoundException: If the user does not exist
        """
        user = await UserService.get_user_by_id(db, user_id)
        if not user:
            raise NotFoundException("User not found")
        return UserRole(user["role"])

    @staticmethod
    async def list_doctors(
        db: AsyncSession,
        page: int = 1,
        page_size: int = 20,
        organization_id: UUID | None = None,
        search: str | None = None,
    ) -> tuple[list[dict], int]:
        """List active doctors ordered by name."""
        conditions = [
            users.c.role == UserRole.DOCTOR.value,
            users.c.is_active.is_(True),
        ]

        if organization_id:
            conditions.append(users.c.organization_id == organization_id)

        if search:
            pattern = f"%{search.strip().lower()}%"
            conditions.append(
                or_(
                    func.lower(users.c.full_name).like(pattern),
                    func.lower(users.c.email).like(pattern),
                    func.lower(users.c.specialization).like(pattern),
                )
            )

        count_stmt = select(func.count()).select_from(users).where(and_(*conditions))
        total = (await db.execute(count_stmt)).scalar() or 0

        stmt = (
            select(users)
            .where(and_(*conditions))
            .order_by(users.c.full_name.asc())
            .limit(page_size)
            .offset((page - 1) * page_size)
        )
        result = await db.execute(stmt)

        return [dict(row) for row in result.mappings().all()], total
