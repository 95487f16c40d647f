"""
Comment service: CRUD, moderation and reply trees for Comment.

New comments start unapproved; only ``approve_comment`` /
``reject_comment`` change the flag.  A reply's parent must already exist
on the same article, so the parent/child graph can never form a cycle.
Deleting a comment removes its whole reply subtree through the
self-referencing ``ON DELETE CASCADE`` foreign key.
"""
from collections import defaultdict

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from blogcms.exceptions import ValidationError
from blogcms.models import Article, Comment, User, utcnow
from blogcms.schemas import CommentCreate, CommentUpdate, PaginatedResponse
from blogcms.services.pagination import paginate

_NEWEST_FIRST = (Comment.created_at.desc(), Comment.id.desc())


def _comment_to_dict(comment: Comment) -> dict:
    return {
        "id": comment.id,
        "content": comment.content,
        "is_approved": comment.is_approved,
        "article_id": comment.article_id,
        "user_id": comment.user_id,
        "parent_id": comment.parent_id,
        "created_at": comment.created_at.isoformat() if comment.created_at else None,
        "updated_at": comment.updated_at.isoformat() if comment.updated_at else None,
        "user_name": comment.user.username if comment.user else None,
        "article_title": comment.article.title if comment.article else None,
    }


async def _get_comment_row(db: AsyncSession, comment_id: int) -> Comment | None:
    q = (
        select(Comment)
        .where(Comment.id == comment_id)
        .options(joinedload(Comment.user), joinedload(Comment.article))
        .execution_options(populate_existing=True)
    )
    return (await db.execute(q)).unique().scalar_one_or_none()


async def _exists(db: AsyncSession, model, row_id: int) -> bool:
    return (await db.execute(select(model.id).where(model.id == row_id))).first() is not None


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_comments(db: AsyncSession, page: int = 1, page_size: int = 20) -> PaginatedResponse:
    """Every comment, approved or not, newest first."""
    return await paginate(
        db,
        select(Comment),
        page,
        page_size,
        _comment_to_dict,
        order_by=_NEWEST_FIRST,
        options=(joinedload(Comment.user), joinedload(Comment.article)),
    )


async def get_comment(db: AsyncSession, comment_id: int) -> dict | None:
    comment = await _get_comment_row(db, comment_id)
    return _comment_to_dict(comment) if comment else None


async def get_comments_by_article(
    db: AsyncSession, article_id: int, include_unapproved: bool = False
) -> list[dict]:
    """Flat list of the article's comments, newest first."""
    q = (
        select(Comment)
        .where(Comment.article_id == article_id)
        .options(joinedload(Comment.user), joinedload(Comment.article))
        .order_by(*_NEWEST_FIRST)
    )
    if not include_unapproved:
        q = q.where(Comment.is_approved.is_(True))
    result = await db.execute(q)
    return [_comment_to_dict(c) for c in result.unique().scalars().all()]


async def get_comment_tree(
    db: AsyncSession, article_id: int, include_unapproved: bool = False
) -> list[dict]:
    """
    Return the article's comments as a forest: top-level comments newest
    first, each with a ``replies`` list in conversation (oldest first)
    order.

    One query loads every comment; the tree is assembled by grouping on
    ``parent_id``.  When unapproved comments are hidden, their replies
    are hidden with them.
    """
    q = (
        select(Comment)
        .where(Comment.article_id == article_id)
        .options(joinedload(Comment.user))
        .order_by(Comment.created_at, Comment.id)
    )
    if not include_unapproved:
        q = q.where(Comment.is_approved.is_(True))
    comments = (await db.execute(q)).unique().scalars().all()

    children: dict[int | None, list[Comment]] = defaultdict(list)
    for c in comments:
        children[c.parent_id].append(c)

    def build(comment: Comment) -> dict:
        node = _comment_to_dict(comment)
        node["replies"] = [build(child) for child in children.get(comment.id, [])]
        return node

    return [build(root) for root in reversed(children.get(None, []))]


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

async def create_comment(db: AsyncSession, data: CommentCreate, user_id: int) -> dict:
    """
    Create an unapproved comment owned by *user_id*.

    Raises ``ValidationError`` when the article, the user or the parent
    comment does not exist, or the parent belongs to another article.
    """
    if not await _exists(db, Article, data.article_id):
        raise ValidationError("Article not found")
    if not await _exists(db, User, user_id):
        raise ValidationError("User not found")
    if data.parent_id is not None:
        q = select(Comment.article_id).where(Comment.id == data.parent_id)
        parent_article_id = (await db.execute(q)).scalar_one_or_none()
        if parent_article_id is None:
            raise ValidationError("Parent comment not found")
        if parent_article_id != data.article_id:
            raise ValidationError("Parent comment belongs to a different article")

    now = utcnow()
    comment = Comment(
        content=data.content,
        article_id=data.article_id,
        user_id=user_id,
        parent_id=data.parent_id,
        is_approved=False,
        created_at=now,
        updated_at=now,
    )
    db.add(comment)
    await db.flush()
    return _comment_to_dict(await _get_comment_row(db, comment.id))


async def update_comment(db: AsyncSession, comment_id: int, data: CommentUpdate) -> dict | None:
    """Change the comment text; an empty or missing content is ignored."""
    comment = await _get_comment_row(db, comment_id)
    if comment is None:
        return None
    if data.content:
        comment.content = data.content
    comment.updated_at = utcnow()
    await db.flush()
    return _comment_to_dict(comment)


async def set_approval(db: AsyncSession, comment_id: int, approved: bool) -> dict | None:
    comment = await _get_comment_row(db, comment_id)
    if comment is None:
        return None
    comment.is_approved = approved
    comment.updated_at = utcnow()
    await db.flush()
    return _comment_to_dict(comment)


async def approve_comment(db: AsyncSession, comment_id: int) -> dict | None:
    return await set_approval(db, comment_id, True)


async def reject_comment(db: AsyncSession, comment_id: int) -> dict | None:
    return await set_approval(db, comment_id, False)


async def delete_comment(db: AsyncSession, comment_id: int) -> bool:
    """Delete the comment together with every reply beneath it."""
    result = await db.execute(delete(Comment).where(Comment.id == comment_id))
    return result.rowcount > 0
