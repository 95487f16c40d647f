from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from blogcms.activity import ActivityLogger, get_activity_logger
from blogcms.database import get_db
from blogcms.dependencies import PaginationParams, get_current_identity, require_identity
from blogcms.exceptions import NotFound
from blogcms.policy import Action, Resource, authorize
from blogcms.schemas import CommentCreate, CommentResponse, CommentUpdate, PaginatedResponse
from blogcms.security import Identity
from blogcms.services import article_service, comment_service

router = APIRouter(prefix="/api/v1/comments", tags=["comments"])


def _not_found(comment_id: int) -> NotFound:
    return NotFound(f"Comment with ID {comment_id} not found")


async def _require_article(db: AsyncSession, article_id: int) -> None:
    if not await article_service.article_exists(db, article_id):
        raise NotFound(f"Article with ID {article_id} not found")


@router.get("", response_model=PaginatedResponse)
async def list_comments(
    pagination: PaginationParams = Depends(),
    identity: Identity | None = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Every comment including unapproved ones (moderation queue)."""
    authorize(Action.READ_PRIVATE, Resource.COMMENT, identity)
    return await comment_service.get_comments(db, pagination.page, pagination.page_size)


@router.get("/by-article/{article_id}", response_model=list[CommentResponse])
async def list_article_comments(
    article_id: int,
    identity: Identity | None = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    await _require_article(db, article_id)
    include_unapproved = identity is not None and identity.is_staff
    return await comment_service.get_comments_by_article(db, article_id, include_unapproved)


@router.get("/by-article/{article_id}/tree")
async def article_comment_tree(
    article_id: int,
    identity: Identity | None = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    await _require_article(db, article_id)
    include_unapproved = identity is not None and identity.is_staff
    return await comment_service.get_comment_tree(db, article_id, include_unapproved)


@router.get("/{comment_id}", response_model=CommentResponse)
async def get_comment(
    comment_id: int,
    identity: Identity | None = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    comment = await comment_service.get_comment(db, comment_id)
    if comment is None:
        raise _not_found(comment_id)
    # Pending comments are visible to their author and to moderators only.
    if not comment["is_approved"]:
        authorize(Action.READ_PRIVATE, Resource.COMMENT, identity, owner_id=comment["user_id"])
    return comment


@router.post("", response_model=CommentResponse, status_code=201)
async def create_comment(
    data: CommentCreate,
    request: Request,
    response: Response,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
):
    authorize(Action.CREATE, Resource.COMMENT, identity)
    comment = await comment_service.create_comment(db, data, user_id=identity.user_id)
    activity.log_comment_action("Create", comment["id"], identity.username, comment["article_id"])
    response.headers["Location"] = str(request.url_for("get_comment", comment_id=comment["id"]))
    return comment


@router.put("/{comment_id}", response_model=CommentResponse)
async def update_comment(
    comment_id: int,
    data: CommentUpdate,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
):
    existing = await comment_service.get_comment(db, comment_id)
    if existing is None:
        raise _not_found(comment_id)
    authorize(Action.UPDATE, Resource.COMMENT, identity, owner_id=existing["user_id"])

    comment = await comment_service.update_comment(db, comment_id, data)
    activity.log_comment_action("Update", comment_id, identity.username, comment["article_id"])
    return comment


@router.delete("/{comment_id}", status_code=204)
async def delete_comment(
    comment_id: int,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
):
    existing = await comment_service.get_comment(db, comment_id)
    if existing is None:
        raise _not_found(comment_id)
    authorize(Action.DELETE, Resource.COMMENT, identity, owner_id=existing["user_id"])

    if not await comment_service.delete_comment(db, comment_id):
        raise _not_found(comment_id)
    activity.log_comment_action("Delete", comment_id, identity.username, existing["article_id"])


@router.patch("/{comment_id}/approve", response_model=CommentResponse)
async def approve_comment(
    comment_id: int,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
):
    authorize(Action.MODERATE, Resource.COMMENT, identity)
    comment = await comment_service.approve_comment(db, comment_id)
    if comment is None:
        raise _not_found(comment_id)
    activity.log_comment_action("Approve", comment_id, identity.username, comment["article_id"])
    return comment


@router.patch("/{comment_id}/reject", response_model=CommentResponse)
async def reject_comment(
    comment_id: int,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
):
    authorize(Action.MODERATE, Resource.COMMENT, identity)
    comment = await comment_service.reject_comment(db, comment_id)
    if comment is None:
        raise _not_found(comment_id)
    activity.log_comment_action("Reject", comment_id, identity.username, comment["article_id"])
    return comment
