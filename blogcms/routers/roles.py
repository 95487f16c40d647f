from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from blogcms.database import get_db
from blogcms.dependencies import get_current_identity
from blogcms.exceptions import NotFound
from blogcms.policy import Action, Resource, authorize
from blogcms.schemas import RoleResponse
from blogcms.security import Identity
from blogcms.services import role_service

router = APIRouter(prefix="/api/v1/roles", tags=["roles"])


@router.get("", response_model=list[RoleResponse])
async def list_roles(
    identity: Identity | None = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    authorize(Action.READ_PRIVATE, Resource.ROLE, identity)
    return await role_service.list_roles(db)


@router.get("/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: int,
    identity: Identity | None = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    authorize(Action.READ_PRIVATE, Resource.ROLE, identity)
    role = await role_service.get_role(db, role_id)
    if role is None:
        raise NotFound(f"Role with ID {role_id} not found")
    return role
