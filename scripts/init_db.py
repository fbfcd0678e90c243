"""Script to initialize the database and optionally seed a demo doctor."""

import asyncio
import sys
from datetime import time
from uuid import uuid4

from sqlalchemy import insert, select

from app.database import engine
from app.models import doctor_schedules, metadata, users

DEMO_DOCTOR_EMAIL = "demo.doctor@carebook.local"


async def init_db(seed: bool = False) -> None:
    """Create all tables, then seed a doctor working weekdays 09:00-17:00."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
        print("✓ Database initialized successfully!")

        if not seed:
            return

        existing = await conn.execute(select(users.c.id).where(users.c.email == DEMO_DOCTOR_EMAIL))
        if existing.first() is not None:
            print("✓ Demo doctor already present")
            return

        doctor_id = uuid4()
        await conn.execute(
            insert(users).values(
                id=doctor_id,
                email=DEMO_DOCTOR_EMAIL,
                full_name="Dr. Demo",
                role="doctor",
                specialization="General Practice",
            )
        )
        await conn.execute(
            insert(doctor_schedules),
            [
                {
                    "doctor_id": doctor_id,
                    "day_of_week": day,
                    "start_time": time(9, 0),
                    "end_time": time(17, 0),
                    "is_available": True,
                }
                for day in ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday")
            ],
        )
        print(f"✓ Seeded demo doctor {doctor_id}")


async def main() -> None:
    """Initialize the database and release the connection pool."""
    try:
        await init_db(seed="--seed" in sys.argv)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
