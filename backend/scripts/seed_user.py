"""
Seed script to create the administrator and a land officer for development.

Run with: python -m scripts.seed_user

The admin credentials come from ADMIN_EMAIL / ADMIN_PASSWORD when set.
"""
import asyncio
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from land_registry.config import settings
from land_registry.database import async_session_maker, init_db
from land_registry.models.user import User, UserRole
from land_registry.services.auth import get_password_hash


DEFAULT_ADMIN_EMAIL = "admin@landregistry.local"
DEFAULT_ADMIN_PASSWORD = "AdminPassword123!"

SEED_USERS = [
    {
        "email": (settings.ADMIN_EMAIL or DEFAULT_ADMIN_EMAIL).lower(),
        "password": settings.ADMIN_PASSWORD or DEFAULT_ADMIN_PASSWORD,
        "full_name": "Registry Administrator",
        "role": UserRole.ADMIN,
    },
    {
        "email": "officer@landregistry.local",
        "password": "OfficerPassword123!",
        "full_name": "Land Officer",
        "role": UserRole.LAND_OFFICER,
    },
]


async def seed_users():
    """Create the seed accounts that do not exist yet"""
    await init_db()

    async with async_session_maker() as session:
        for seed in SEED_USERS:
            result = await session.execute(select(User).where(User.email == seed["email"]))
            if result.scalar_one_or_none():
                print(f"{seed['role'].value} {seed['email']} already exists")
                continue

            session.add(User(
                email=seed["email"],
                hashed_password=get_password_hash(seed["password"]),
                full_name=seed["full_name"],
                role=seed["role"],
                is_active=True,
            ))
            print(f"Created {seed['role'].value} {seed['email']} / {seed['password']}")

        await session.commit()


if __name__ == "__main__":
    asyncio.run(seed_users())
