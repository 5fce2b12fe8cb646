"""
Database seeding script for initial users.

Creates the ADMIN account (which cannot be registered over the API) and one
demo DRIVER with a driver profile. Run once after the database is reachable.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from backend.app.main import app  # noqa: F401  registers every model on Base
from backend.app.db.session import AsyncSessionLocal, Base, engine
from backend.app.models.driver import Driver
from backend.app.models.user import User
from backend.app.models.user_enums import UserRole
from backend.app.core.security import get_password_hash


async def seed_users():
    """
    Seed initial users.

    Creates:
    - 1 ADMIN user
    - 1 DRIVER user with a driver profile
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("Starting user seeding...")

        result = await db.execute(select(User).where(User.username == "admin"))
        if result.scalar_one_or_none():
            print("ADMIN user already exists, skipping seeding")
            return

        admin_user = User(
            email="admin@fleet.local",
            username="admin",
            full_name="Fleet Administrator",
            hashed_password=get_password_hash("admin123"),
            role=UserRole.ADMIN,
            is_active=True,
        )
        db.add(admin_user)
        print("Created ADMIN user (username: admin, password: admin123)")

        driver_user = User(
            email="driver@fleet.local",
            username="driver",
            full_name="Demo Driver",
            hashed_password=get_password_hash("driver123"),
            role=UserRole.DRIVER,
            is_active=True,
        )
        db.add(driver_user)
        await db.flush()

        db.add(Driver(user_id=driver_user.id, license_number="DEMO-0001"))
        print("Created DRIVER user (username: driver, password: driver123) with license DEMO-0001")

        await db.commit()

        print("\nUser seeding completed successfully!")
        print("\nNote: further DRIVER users register via POST /v1/auth/register")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed_users())
