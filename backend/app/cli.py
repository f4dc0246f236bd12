"""Management CLI.

Usage:
    python -m app.cli seed                                  # ministries + permission groups
    python -m app.cli create-admin EMAIL NAME PASSWORD      # active super admin
"""

import asyncio
import sys

from sqlalchemy import select

from app.auth.password import hash_password
from app.auth.permissions import CAPABILITY_FIELDS, normalize_capabilities
from app.config import settings
from app.database import Database, utcnow
from app.models.ministry import Ministry
from app.models.permission import PermissionGroup
from app.models.user import User, UserRole

MINISTRIES = [
    ("Ministère des Finances et du Budget", "MFB"),
    ("Ministère de l'Intérieur", "MINT"),
    ("Ministère de la Santé et de l'Action sociale", "MSAS"),
    ("Ministère de l'Éducation nationale", "MEN"),
    ("Ministère de l'Agriculture", "MAER"),
    ("Ministère des Infrastructures et des Transports", "MITTA"),
    ("Ministère de la Justice", "MJ"),
    ("Ministère des Affaires étrangères", "MAESE"),
]

PERMISSION_GROUPS = {
    "viewer": (
        "Read-only access to actions and teams",
        {"can_view_actions": True, "can_view_team": True},
    ),
    "editor": (
        "Create and edit actions, view teams and reports",
        {
            "can_view_actions": True,
            "can_create_actions": True,
            "can_edit_actions": True,
            "can_view_team": True,
            "can_view_reports": True,
        },
    ),
    "manager": (
        "Full control over one ministry",
        {field: True for field in CAPABILITY_FIELDS},
    ),
}


async def seed(database: Database) -> None:
    async with database.sessionmaker() as session:
        existing = set((await session.execute(select(Ministry.name))).scalars().all())
        added = 0
        for name, abbrev in MINISTRIES:
            if name not in existing:
                session.add(Ministry(name=name, abbrev=abbrev))
                added += 1

        groups = set((await session.execute(select(PermissionGroup.name))).scalars().all())
        for name, (description, caps) in PERMISSION_GROUPS.items():
            if name not in groups:
                session.add(
                    PermissionGroup(
                        name=name,
                        description=description,
                        permissions=normalize_capabilities(caps),
                    )
                )
        await session.commit()
    print(f"  {added} ministries added, {len(PERMISSION_GROUPS)} permission groups checked")


async def create_admin(database: Database, email: str, name: str, password: str) -> None:
    async with database.sessionmaker() as session:
        result = await session.execute(select(User).where(User.email == email.lower()))
        if result.scalar_one_or_none():
            print(f"  {email} already exists")
            return
        session.add(
            User(
                name=name,
                email=email.lower(),
                hashed_password=hash_password(password),
                role=UserRole.ADMIN.value,
                is_super_admin=True,
                is_active=True,
                approved_at=utcnow(),
            )
        )
        await session.commit()
    print(f"  Admin {email} created")


async def _run(cmd: str, args: list[str]) -> None:
    database = Database.from_settings(settings)
    try:
        if cmd == "seed":
            await seed(database)
        elif cmd == "create-admin":
            await create_admin(database, *args)
    finally:
        await database.dispose()


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd == "seed":
        asyncio.run(_run(cmd, []))
    elif cmd == "create-admin" and len(sys.argv) == 5:
        asyncio.run(_run(cmd, sys.argv[2:5]))
    else:
        print("Usage: python -m app.cli [seed|create-admin EMAIL NAME PASSWORD]")
