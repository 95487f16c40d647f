"""
Article service: business logic for the Article aggregate.

Design notes
------------
- Published list reads (feed, by-tag, by-author) go through the
  cache-aside pattern (Redis, falling back to the DB).  Cache keys encode
  every dimension that affects the result.  Drafts are never cached.
- Eager loading via ``joinedload`` (many-to-one: author) and
  ``selectinload`` (collections: tags, comments) avoids N+1 queries;
  ``unique()`` deduplicates rows after a joined eager load.
- The slug is derived from the title on create and on every title
  change; collisions get a numeric suffix (see ``slugs.unique_slug``).
- ``published_at`` is stamped the first time an article is published and
  never cleared afterwards.
- The view counter is bumped with a single ``UPDATE ... SET view_count =
  view_count + 1`` so concurrent readers cannot lose increments.
- Deletes are a single ``DELETE`` statement; the ``ON DELETE CASCADE``
  foreign keys remove comments and tag links inside the same statement.
- Service functions flush but do not commit; the transaction boundary
  is owned by the ``get_db`` dependency in the router layer.
"""
from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from blogcms.cache import cache
from blogcms.config import settings
from blogcms.exceptions import ValidationError
from blogcms.models import Article, Comment, Tag, article_tags, utcnow
from blogcms.schemas import ArticleCreate, ArticleUpdate, PaginatedResponse
from blogcms.services.pagination import paginate
from blogcms.services.slugs import unique_slug

_NEWEST_FIRST = (Article.created_at.desc(), Article.id.desc())
_LIST_OPTIONS = (joinedload(Article.author), selectinload(Article.tags))


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _article_to_dict(article: Article) -> dict:
    """Serialise an Article ORM instance to a plain dict (list view)."""
    return {
        "id": article.id,
        "title": article.title,
        "slug": article.slug,
        "content": article.content,
        "excerpt": article.excerpt,
        "cover_image_url": article.cover_image_url,
        "is_published": article.is_published,
        "published_at": article.published_at.isoformat() if article.published_at else None,
        "view_count": article.view_count,
        "author_id": article.author_id,
        "author_name": article.author.username if article.author else None,
        "author_email": article.author.email if article.author else None,
        "created_at": article.created_at.isoformat() if article.created_at else None,
        "updated_at": article.updated_at.isoformat() if article.updated_at else None,
        "tags": [
            {"id": t.id, "name": t.name, "slug": t.slug}
            for t in sorted(article.tags, key=lambda t: t.name)
        ],
    }


def _article_detail_to_dict(article: Article) -> dict:
    """Detail view: list view plus the approved comments, oldest first."""
    data = _article_to_dict(article)
    approved = sorted(
        (c for c in article.comments if c.is_approved),
        key=lambda c: (c.created_at, c.id),
    )
    data["comments"] = [
        {
            "id": c.id,
            "content": c.content,
            "user_id": c.user_id,
            "user_name": c.user.username if c.user else None,
            "parent_id": c.parent_id,
            "created_at": c.created_at.isoformat() if c.created_at else None,
        }
        for c in approved
    ]
    return data


# ---------------------------------------------------------------------------
# Row helpers
# ---------------------------------------------------------------------------

async def _get_article_row(db: AsyncSession, article_id: int) -> Article | None:
    q = (
        select(Article)
        .where(Article.id == article_id)
        .options(
            joinedload(Article.author),
            selectinload(Article.tags),
            selectinload(Article.comments).joinedload(Comment.user),
        )
        .execution_options(populate_existing=True)
    )
    result = await db.execute(q)
    return result.unique().scalar_one_or_none()


async def _resolve_tags(db: AsyncSession, tag_ids: list[int]) -> list[Tag]:
    """
    Return the Tag rows for *tag_ids* (duplicates dropped, order kept).

    Raises ``ValidationError`` naming any id with no backing tag.
    """
    wanted = list(dict.fromkeys(tag_ids))
    if not wanted:
        return []
    result = await db.execute(select(Tag).where(Tag.id.in_(wanted)))
    by_id = {t.id: t for t in result.scalars().all()}
    missing = [i for i in wanted if i not in by_id]
    if missing:
        raise ValidationError(f"Unknown tag id(s): {', '.join(map(str, missing))}")
    return [by_id[i] for i in wanted]


async def _cached_page(cache_key: str, build) -> PaginatedResponse:
    cached = await cache.get(cache_key)
    if cached:
        return PaginatedResponse(**cached)
    response = await build()
    await cache.set(cache_key, response.model_dump(), ttl=settings.CACHE_TTL_LIST)
    return response


# ---------------------------------------------------------------------------
# Lists
# ---------------------------------------------------------------------------

async def get_articles(db: AsyncSession, page: int = 1, page_size: int = 20) -> PaginatedResponse:
    """Published articles, newest first."""

    async def build():
        return await paginate(
            db,
            select(Article).where(Article.is_published.is_(True)),
            page,
            page_size,
            _article_to_dict,
            order_by=_NEWEST_FIRST,
            options=_LIST_OPTIONS,
        )

    return await _cached_page(f"articles:list:{page}:{page_size}", build)


async def get_articles_by_tag(
    db: AsyncSession, tag_id: int, page: int = 1, page_size: int = 20
) -> PaginatedResponse:
    """Published articles linked to *tag_id*, newest first."""

    async def build():
        filtered = (
            select(Article)
            .join(article_tags, article_tags.c.article_id == Article.id)
            .where(article_tags.c.tag_id == tag_id, Article.is_published.is_(True))
        )
        return await paginate(
            db, filtered, page, page_size, _article_to_dict,
            order_by=_NEWEST_FIRST, options=_LIST_OPTIONS,
        )

    return await _cached_page(f"articles:tag:{tag_id}:{page}:{page_size}", build)


async def get_articles_by_author(
    db: AsyncSession, author_id: int, page: int = 1, page_size: int = 20
) -> PaginatedResponse:
    """Published articles written by *author_id*, newest first."""

    async def build():
        filtered = select(Article).where(
            Article.author_id == author_id, Article.is_published.is_(True)
        )
        return await paginate(
            db, filtered, page, page_size, _article_to_dict,
            order_by=_NEWEST_FIRST, options=_LIST_OPTIONS,
        )

    return await _cached_page(f"articles:author:{author_id}:{page}:{page_size}", build)


async def get_drafts(db: AsyncSession, page: int = 1, page_size: int = 20) -> PaginatedResponse:
    """Unpublished articles, newest first (never cached)."""
    return await paginate(
        db,
        select(Article).where(Article.is_published.is_(False)),
        page,
        page_size,
        _article_to_dict,
        order_by=_NEWEST_FIRST,
        options=_LIST_OPTIONS,
    )


# ---------------------------------------------------------------------------
# Single article
# ---------------------------------------------------------------------------

async def get_article(db: AsyncSession, article_id: int) -> dict | None:
    """
    Return the detail dict for *article_id*, or None when it does not
    exist.  Reading does not touch the view counter; see
    ``increment_view_count``.
    """
    article = await _get_article_row(db, article_id)
    return _article_detail_to_dict(article) if article else None


async def increment_view_count(db: AsyncSession, article_id: int) -> int | None:
    """
    Add exactly one to the article's view counter and return the new
    value, or None when the article does not exist.
    """
    result = await db.execute(
        update(Article)
        .where(Article.id == article_id)
        .values(view_count=Article.view_count + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return None
    q = select(Article.view_count).where(Article.id == article_id)
    return (await db.execute(q)).scalar_one()


async def reset_view_count(db: AsyncSession, article_id: int) -> bool:
    result = await db.execute(
        update(Article)
        .where(Article.id == article_id)
        .values(view_count=0)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return False
    await cache.invalidate_articles()
    return True


async def create_article(db: AsyncSession, data: ArticleCreate, author_id: int) -> dict:
    """
    Create an article owned by *author_id* and return its detail dict.

    The slug, timestamps, view counter and ``published_at`` are server
    controlled.  Raises ``ValidationError`` for unknown tag ids.
    """
    tags = await _resolve_tags(db, data.tag_ids)
    now = utcnow()
    article = Article(
        title=data.title,
        slug=await unique_slug(db, Article, data.title, fallback="article"),
        content=data.content,
        excerpt=data.excerpt or None,
        cover_image_url=data.cover_image_url or None,
        is_published=data.is_published,
        published_at=now if data.is_published else None,
        view_count=0,
        author_id=author_id,
        created_at=now,
        updated_at=now,
        tags=tags,
    )
    db.add(article)
    await db.flush()

    await cache.invalidate_articles()
    return _article_detail_to_dict(await _get_article_row(db, article.id))


async def update_article(db: AsyncSession, article_id: int, data: ArticleUpdate) -> dict | None:
    """
    Partially update an article and return its detail dict, or None when
    it does not exist.

    ``None`` and empty-string fields are ignored.  ``tag_ids`` replaces
    the tag links when given (an empty list clears them).
    """
    article = await _get_article_row(db, article_id)
    if article is None:
        return None

    changes = data.model_dump(exclude_unset=True)
    tag_ids = changes.pop("tag_ids", None)
    changes = {k: v for k, v in changes.items() if v is not None and v != ""}

    for field, value in changes.items():
        setattr(article, field, value)

    if "title" in changes:
        article.slug = await unique_slug(
            db, Article, changes["title"], fallback="article", exclude_id=article_id
        )

    if article.is_published and article.published_at is None:
        article.published_at = datetime.now(timezone.utc)

    if tag_ids is not None:
        article.tags = await _resolve_tags(db, tag_ids)

    article.updated_at = utcnow()
    await db.flush()

    await cache.invalidate_articles()
    return _article_detail_to_dict(await _get_article_row(db, article_id))


async def delete_article(db: AsyncSession, article_id: int) -> bool:
    """
    Delete the article; its comments and tag links cascade, the tags
    themselves stay.  Returns False when the article does not exist.
    """
    result = await db.execute(delete(Article).where(Article.id == article_id))
    if result.rowcount == 0:
        return False
    await cache.invalidate_articles()
    return True


async def article_exists(db: AsyncSession, article_id: int) -> bool:
    return (await db.execute(select(Article.id).where(Article.id == article_id))).first() is not None
