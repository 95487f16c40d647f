from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from blogcms.activity import ActivityLogger, get_activity_logger
from blogcms.database import get_db
from blogcms.dependencies import require_identity
from blogcms.exceptions import NotFound
from blogcms.policy import Action, Resource, authorize
from blogcms.schemas import TagCreate, TagResponse, TagUpdate
from blogcms.security import Identity
from blogcms.services import tag_service

router = APIRouter(prefix="/api/v1/tags", tags=["tags"])


def _not_found(tag_id: int) -> NotFound:
    return NotFound(f"Tag with ID {tag_id} not found")


@router.get("", response_model=list[TagResponse])
async def list_tags(db: AsyncSession = Depends(get_db)):
    return await tag_service.get_tags(db)


@router.get("/{tag_id}", response_model=TagResponse)
async def get_tag(tag_id: int, db: AsyncSession = Depends(get_db)):
    tag = await tag_service.get_tag(db, tag_id)
    if tag is None:
        raise _not_found(tag_id)
    return tag


@router.post("", response_model=TagResponse, status_code=201)
async def create_tag(
    data: TagCreate,
    request: Request,
    response: Response,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
):
    authorize(Action.CREATE, Resource.TAG, identity)
    tag = await tag_service.create_tag(db, data)
    activity.log_tag_action("Create", tag["id"], identity.username, tag["name"])
    response.headers["Location"] = str(request.url_for("get_tag", tag_id=tag["id"]))
    return tag


@router.put("/{tag_id}", response_model=TagResponse)
async def update_tag(
    tag_id: int,
    data: TagUpdate,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
):
    authorize(Action.UPDATE, Resource.TAG, identity)
    tag = await tag_service.update_tag(db, tag_id, data)
    if tag is None:
        raise _not_found(tag_id)
    activity.log_tag_action("Update", tag_id, identity.username, tag["name"])
    return tag


@router.delete("/{tag_id}", status_code=204)
async def delete_tag(
    tag_id: int,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
):
    authorize(Action.DELETE, Resource.TAG, identity)
    if not await tag_service.delete_tag(db, tag_id):
        raise _not_found(tag_id)
    activity.log_tag_action("Delete", tag_id, identity.username, "")
