"""
User service: CRUD, authentication and role assignment for the User
aggregate.

Usernames and emails are unique.  Both are checked before every insert
or update so callers get a ``ValidationError`` with a readable message
rather than a database integrity error.  Passwords are only ever stored
as bcrypt hashes.
"""
import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from blogcms.cache import cache
from blogcms.exceptions import ValidationError
from blogcms.models import Role, User, UserRole, utcnow
from blogcms.schemas import PaginatedResponse, UserCreate, UserUpdate
from blogcms.security import USER, hash_password, verify_password
from blogcms.services import role_service
from blogcms.services.pagination import paginate

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _user_to_dict(user: User) -> dict:
    """Serialise a User ORM instance (roles must be loaded)."""
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "full_name": user.full_name or "",
        "avatar_url": user.avatar_url or "",
        "bio": user.bio or "",
        "is_active": user.is_active,
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "updated_at": user.updated_at.isoformat() if user.updated_at else None,
        "roles": sorted(r.name for r in user.roles),
    }


# ---------------------------------------------------------------------------
# Row helpers
# ---------------------------------------------------------------------------

async def _get_user_row(db: AsyncSession, **criteria) -> User | None:
    q = (
        select(User)
        .filter_by(**criteria)
        .options(selectinload(User.roles))
        .execution_options(populate_existing=True)
    )
    result = await db.execute(q)
    return result.scalar_one_or_none()


async def _ensure_unique(
    db: AsyncSession,
    username: str | None,
    email: str | None,
    exclude_id: int | None = None,
) -> None:
    if username is not None:
        q = select(User.id).where(User.username == username)
        if exclude_id is not None:
            q = q.where(User.id != exclude_id)
        if (await db.execute(q)).first() is not None:
            raise ValidationError("Username already exists")
    if email is not None:
        q = select(User.id).where(User.email == email)
        if exclude_id is not None:
            q = q.where(User.id != exclude_id)
        if (await db.execute(q)).first() is not None:
            raise ValidationError("Email already exists")


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def get_users(db: AsyncSession, page: int = 1, page_size: int = 20) -> PaginatedResponse:
    """Return users ordered by creation date (newest first)."""
    return await paginate(
        db,
        select(User),
        page,
        page_size,
        _user_to_dict,
        order_by=(User.created_at.desc(), User.id.desc()),
        options=(selectinload(User.roles),),
    )


async def get_user(db: AsyncSession, user_id: int) -> dict | None:
    user = await _get_user_row(db, id=user_id)
    return _user_to_dict(user) if user else None


async def get_user_by_username(db: AsyncSession, username: str) -> dict | None:
    user = await _get_user_row(db, username=username)
    return _user_to_dict(user) if user else None


async def user_exists(db: AsyncSession, user_id: int) -> bool:
    return (await db.execute(select(User.id).where(User.id == user_id))).first() is not None


async def create_user(db: AsyncSession, data: UserCreate) -> dict:
    """
    Create a new active user holding the default "User" role.

    Raises ``ValidationError`` when the username or email is taken.
    """
    email = str(data.email).lower()
    await _ensure_unique(db, data.username, email)

    user = User(
        username=data.username,
        email=email,
        password_hash=hash_password(data.password),
        full_name=data.full_name,
        is_active=True,
    )
    db.add(user)
    await db.flush()

    default_role = await role_service.get_role_by_name(db, USER)
    if default_role is not None:
        db.add(UserRole(user_id=user.id, role_id=default_role.id))
        await db.flush()
    else:
        logger.warning("Default role %r missing; user %s created without roles", USER, user.username)

    return _user_to_dict(await _get_user_row(db, id=user.id))


async def update_user(db: AsyncSession, user_id: int, data: UserUpdate) -> dict | None:
    """
    Partially update a user.  ``None`` and empty-string fields are left
    untouched.  Returns None when the user does not exist.
    """
    user = await _get_user_row(db, id=user_id)
    if user is None:
        return None

    changes = {
        field: value
        for field, value in data.model_dump(exclude_unset=True).items()
        if value is not None and value != ""
    }
    if "email" in changes:
        changes["email"] = str(changes["email"]).lower()
    await _ensure_unique(db, changes.get("username"), changes.get("email"), exclude_id=user_id)

    password = changes.pop("password", None)
    if password is not None:
        user.password_hash = hash_password(password)
    for field, value in changes.items():
        setattr(user, field, value)
    user.updated_at = utcnow()

    await db.flush()
    # Cached article lists embed the author's username and email.
    if "username" in changes or "email" in changes:
        await cache.invalidate_articles()
    return _user_to_dict(user)


async def delete_user(db: AsyncSession, user_id: int) -> bool:
    """
    Delete a user.  Their role links, articles (with those articles'
    comments and tag links) and comments go with them through the
    foreign-key cascades.
    """
    result = await db.execute(delete(User).where(User.id == user_id))
    if result.rowcount == 0:
        return False
    # Their articles leave the cached lists and the tag counts.
    await cache.invalidate_tags()
    return True


async def authenticate(db: AsyncSession, username: str, password: str) -> bool:
    """True iff the user exists, is active and *password* matches its hash."""
    result = await db.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        return False
    return verify_password(password, user.password_hash)


async def get_user_roles(db: AsyncSession, user_id: int) -> list[str]:
    q = (
        select(Role.name)
        .join(UserRole, UserRole.role_id == Role.id)
        .where(UserRole.user_id == user_id)
        .order_by(Role.name)
    )
    return list((await db.execute(q)).scalars().all())


async def assign_role(db: AsyncSession, user_id: int, role_id: int) -> bool:
    """
    Give *user_id* the role *role_id*.

    Returns False when the user already holds it.  Raises
    ``ValidationError`` for an unknown role.
    """
    if (await db.execute(select(Role.id).where(Role.id == role_id))).first() is None:
        raise ValidationError(f"Role with ID {role_id} not found")
    held = select(UserRole.role_id).where(UserRole.user_id == user_id, UserRole.role_id == role_id)
    if (await db.execute(held)).first() is not None:
        return False
    db.add(UserRole(user_id=user_id, role_id=role_id))
    await db.flush()
    return True


async def revoke_role(db: AsyncSession, user_id: int, role_id: int) -> bool:
    """Remove the link; False when the user did not hold the role."""
    result = await db.execute(
        delete(UserRole).where(UserRole.user_id == user_id, UserRole.role_id == role_id)
    )
    await db.flush()
    return result.rowcount > 0
