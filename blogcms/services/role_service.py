"""
Role service: lookups and idempotent seeding of the standard roles.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from blogcms.models import Role
from blogcms.security import ADMIN, MODERATOR, USER

logger = logging.getLogger(__name__)

STANDARD_ROLE_DESCRIPTIONS: dict[str, str] = {
    ADMIN: "System administrator",
    MODERATOR: "Content moderator",
    USER: "Regular user",
}


def _role_to_dict(role: Role) -> dict:
    return {
        "id": role.id,
        "name": role.name,
        "description": role.description or "",
        "created_at": role.created_at.isoformat() if role.created_at else None,
    }


async def list_roles(db: AsyncSession) -> list[dict]:
    result = await db.execute(select(Role).order_by(Role.id))
    return [_role_to_dict(r) for r in result.scalars().all()]


async def get_role(db: AsyncSession, role_id: int) -> dict | None:
    role = await db.get(Role, role_id)
    return _role_to_dict(role) if role else None


async def get_role_by_name(db: AsyncSession, name: str) -> Role | None:
    result = await db.execute(select(Role).where(Role.name == name))
    return result.scalar_one_or_none()


async def ensure_standard_roles(db: AsyncSession) -> list[str]:
    """
    Create whichever of Admin / Moderator / User is missing.

    Returns the names that were created; an empty list means the roles
    were already in place.
    """
    existing = set((await db.execute(select(Role.name))).scalars().all())
    created: list[str] = []
    for name, description in STANDARD_ROLE_DESCRIPTIONS.items():
        if name not in existing:
            db.add(Role(name=name, description=description))
            created.append(name)
    if created:
        await db.flush()
        logger.info("Seeded roles: %s", ", ".join(created))
    return created
