"""
Schema creation and seed data.

``init_database`` is run by the application lifespan and by
``scripts/seed.py``.  Every step is idempotent, so running it against an
already initialised database changes nothing.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from blogcms.database import Base
from blogcms.models import Role, User, UserRole
from blogcms.security import ADMIN, MODERATOR, USER, hash_password
from blogcms.services import role_service

logger = logging.getLogger(__name__)

# (username, email, password, full name, role)
DEMO_ACCOUNTS: tuple[tuple[str, str, str, str, str], ...] = (
    ("admin", "admin@blog.com", "admin123", "Administrator", ADMIN),
    ("moderator", "moderator@blog.com", "moderator123", "Moderator", MODERATOR),
    ("user", "user@blog.com", "user123", "Regular User", USER),
)


async def seed_demo_accounts(db: AsyncSession) -> list[str]:
    """
    Create the demo admin / moderator / user accounts that do not exist
    yet, each holding its matching role.  Returns the created usernames.
    """
    roles = {r.name: r for r in (await db.execute(select(Role))).scalars().all()}
    existing = set((await db.execute(select(User.username))).scalars().all())

    created: list[str] = []
    for username, email, password, full_name, role_name in DEMO_ACCOUNTS:
        if username in existing:
            continue
        user = User(
            username=username,
            email=email,
            password_hash=hash_password(password),
            full_name=full_name,
            is_active=True,
        )
        db.add(user)
        await db.flush()
        db.add(UserRole(user_id=user.id, role_id=roles[role_name].id))
        created.append(username)

    if created:
        await db.flush()
        logger.info("Seeded demo accounts: %s", ", ".join(created))
    return created


async def init_database(
    engine: AsyncEngine,
    session_factory: async_sessionmaker,
    seed_demo: bool = False,
) -> None:
    """Create missing tables, the standard roles and optionally demo accounts."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with session_factory() as session:
        await role_service.ensure_standard_roles(session)
        if seed_demo:
            await seed_demo_accounts(session)
        await session.commit()
