from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from blogcms.activity import ActivityLogger, get_activity_logger
from blogcms.database import get_db
from blogcms.dependencies import PaginationParams, get_current_identity, require_identity
from blogcms.exceptions import NotFound
from blogcms.policy import Action, Resource, authorize
from blogcms.schemas import ArticleCreate, ArticleUpdate, PaginatedResponse
from blogcms.security import Identity
from blogcms.services import article_service

router = APIRouter(prefix="/api/v1/articles", tags=["articles"])


def _not_found(article_id: int) -> NotFound:
    return NotFound(f"Article with ID {article_id} not found")


@router.get("", response_model=PaginatedResponse)
async def list_articles(
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.get_articles(db, pagination.page, pagination.page_size)


@router.get("/drafts", response_model=PaginatedResponse)
async def list_drafts(
    pagination: PaginationParams = Depends(),
    identity: Identity | None = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    authorize(Action.READ_PRIVATE, Resource.ARTICLE, identity)
    return await article_service.get_drafts(db, pagination.page, pagination.page_size)


@router.get("/by-tag/{tag_id}", response_model=PaginatedResponse)
async def list_articles_by_tag(
    tag_id: int,
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.get_articles_by_tag(db, tag_id, pagination.page, pagination.page_size)


@router.get("/by-author/{author_id}", response_model=PaginatedResponse)
async def list_articles_by_author(
    author_id: int,
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.get_articles_by_author(
        db, author_id, pagination.page, pagination.page_size
    )


@router.get("/{article_id}")
async def get_article(
    article_id: int,
    identity: Identity | None = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Return one article and count the read as a view."""
    article = await article_service.get_article(db, article_id)
    if article is None:
        raise _not_found(article_id)
    if not article["is_published"]:
        authorize(Action.READ_PRIVATE, Resource.ARTICLE, identity, owner_id=article["author_id"])

    article["view_count"] = await article_service.increment_view_count(db, article_id)
    return article


@router.post("", status_code=201)
async def create_article(
    data: ArticleCreate,
    request: Request,
    response: Response,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
):
    authorize(Action.CREATE, Resource.ARTICLE, identity)
    article = await article_service.create_article(db, data, author_id=identity.user_id)
    activity.log_article_action("Create", article["id"], identity.username, article["title"])
    response.headers["Location"] = str(request.url_for("get_article", article_id=article["id"]))
    return article


@router.put("/{article_id}")
async def update_article(
    article_id: int,
    data: ArticleUpdate,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
):
    existing = await article_service.get_article(db, article_id)
    if existing is None:
        raise _not_found(article_id)
    authorize(Action.UPDATE, Resource.ARTICLE, identity, owner_id=existing["author_id"])

    article = await article_service.update_article(db, article_id, data)
    activity.log_article_action("Update", article_id, identity.username, article["title"])
    return article


@router.delete("/{article_id}", status_code=204)
async def delete_article(
    article_id: int,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
):
    existing = await article_service.get_article(db, article_id)
    if existing is None:
        raise _not_found(article_id)
    authorize(Action.DELETE, Resource.ARTICLE, identity, owner_id=existing["author_id"])

    if not await article_service.delete_article(db, article_id):
        raise _not_found(article_id)
    activity.log_article_action("Delete", article_id, identity.username, existing["title"])


@router.post("/{article_id}/views/reset", status_code=204)
async def reset_views(
    article_id: int,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
):
    authorize(Action.MODERATE, Resource.ARTICLE, identity)
    if not await article_service.reset_view_count(db, article_id):
        raise _not_found(article_id)
    activity.log_article_action("ResetViews", article_id, identity.username, "")
