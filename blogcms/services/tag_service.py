"""
Tag service: CRUD for Tag.

Tag names are unique (checked on create and on rename, excluding the tag
itself); the slug is regenerated from the name on every rename.  The
public tag list is cached and invalidated on any tag write.
"""
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from blogcms.cache import cache
from blogcms.config import settings
from blogcms.exceptions import ValidationError
from blogcms.models import Tag, article_tags
from blogcms.schemas import TagCreate, TagUpdate
from blogcms.services.slugs import unique_slug

_CACHE_KEY_LIST = "tags:list"


def _tag_to_dict(tag: Tag, article_count: int = 0) -> dict:
    return {
        "id": tag.id,
        "name": tag.name,
        "slug": tag.slug,
        "description": tag.description or "",
        "created_at": tag.created_at.isoformat() if tag.created_at else None,
        "article_count": article_count,
    }


async def _get_tag_row(db: AsyncSession, tag_id: int) -> Tag | None:
    result = await db.execute(select(Tag).where(Tag.id == tag_id))
    return result.scalar_one_or_none()


async def _article_count(db: AsyncSession, tag_id: int) -> int:
    q = select(func.count()).select_from(article_tags).where(article_tags.c.tag_id == tag_id)
    return (await db.execute(q)).scalar_one()


async def _ensure_unique_name(db: AsyncSession, name: str, exclude_id: int | None = None) -> None:
    q = select(Tag.id).where(Tag.name == name)
    if exclude_id is not None:
        q = q.where(Tag.id != exclude_id)
    if (await db.execute(q)).first() is not None:
        raise ValidationError("Tag name already exists")


async def get_tags(db: AsyncSession) -> list[dict]:
    """Return all tags ordered by name, each with its article count."""
    cached = await cache.get(_CACHE_KEY_LIST)
    if cached is not None:
        return cached

    counts = (
        select(article_tags.c.tag_id, func.count().label("n"))
        .group_by(article_tags.c.tag_id)
        .subquery()
    )
    q = (
        select(Tag, func.coalesce(counts.c.n, 0))
        .outerjoin(counts, counts.c.tag_id == Tag.id)
        .order_by(Tag.name)
    )
    result = await db.execute(q)
    data = [_tag_to_dict(tag, n) for tag, n in result.all()]
    await cache.set(_CACHE_KEY_LIST, data, ttl=settings.CACHE_TTL_LIST)
    return data


async def get_tag(db: AsyncSession, tag_id: int) -> dict | None:
    tag = await _get_tag_row(db, tag_id)
    if tag is None:
        return None
    return _tag_to_dict(tag, await _article_count(db, tag_id))


async def create_tag(db: AsyncSession, data: TagCreate) -> dict:
    """Create a tag; raises ``ValidationError`` on a duplicate name."""
    name = data.name.strip()
    if not name:
        raise ValidationError("Tag name is required")
    await _ensure_unique_name(db, name)

    tag = Tag(
        name=name,
        slug=await unique_slug(db, Tag, name, fallback="tag"),
        description=data.description,
    )
    db.add(tag)
    await db.flush()
    await cache.invalidate_tags()
    return _tag_to_dict(tag)


async def update_tag(db: AsyncSession, tag_id: int, data: TagUpdate) -> dict | None:
    """
    Partially update a tag.  An empty or missing name leaves the name and
    slug alone.  Returns None when the tag does not exist.
    """
    tag = await _get_tag_row(db, tag_id)
    if tag is None:
        return None

    name = (data.name or "").strip()
    if name and name != tag.name:
        await _ensure_unique_name(db, name, exclude_id=tag_id)
        tag.name = name
        tag.slug = await unique_slug(db, Tag, name, fallback="tag", exclude_id=tag_id)
    if data.description is not None:
        tag.description = data.description

    await db.flush()
    await cache.invalidate_tags()
    return _tag_to_dict(tag, await _article_count(db, tag_id))


async def delete_tag(db: AsyncSession, tag_id: int) -> bool:
    """Delete a tag; its article links are removed, the articles are not."""
    result = await db.execute(delete(Tag).where(Tag.id == tag_id))
    if result.rowcount == 0:
        return False
    await cache.invalidate_tags()
    return True
