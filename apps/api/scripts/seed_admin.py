"""
Seed Admin User

Creates the first ADMIN account so invitations can be issued. Every later
account is provisioned through an invitation.

Credentials are read from the environment:
    SEED_ADMIN_EMAIL, SEED_ADMIN_PASSWORD, SEED_ADMIN_NAME (optional)

Usage:
    cd apps/api
    SEED_ADMIN_EMAIL=admin@example.org SEED_ADMIN_PASSWORD=... python scripts/seed_admin.py
"""

import asyncio
import sys
from pathlib import Path

# Add the src directory to the path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pydantic import EmailStr, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from gdpt.core.security import hash_password
from gdpt.core.unit_of_work import SqlAlchemyUnitOfWork
from gdpt.modules.users.models import UserRole


class SeedAdminSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SEED_ADMIN_", extra="ignore")

    email: EmailStr
    password: str = Field(min_length=8)
    name: str = "Administrator"


async def seed_admin(config: SeedAdminSettings) -> None:
    """Create the admin user if no account exists for the email."""
    uow = SqlAlchemyUnitOfWork()

    async with uow:
        existing_user = await uow.users.get_by_email(config.email)
        if existing_user:
            print(f"User already exists: {config.email}")
            print(f"  ID: {existing_user.id}")
            print(f"  Role: {existing_user.role.value}")
            return

        admin = await uow.users.create(
            email=config.email,
            name=config.name,
            role=UserRole.ADMIN,
            email_verified=True,
            force_password_change=True,
        )
        await uow.users.add_password_credential(admin.id, hash_password(config.password))

    print("Admin created successfully!")
    print(f"  Email: {admin.email}")
    print(f"  Name: {admin.name}")
    print(f"  ID: {admin.id}")


if __name__ == "__main__":
    asyncio.run(seed_admin(SeedAdminSettings()))
