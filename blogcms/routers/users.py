from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from blogcms.activity import ActivityLogger, get_activity_logger
from blogcms.database import get_db
from blogcms.dependencies import PaginationParams, get_current_identity, require_identity
from blogcms.exceptions import NotFound, PermissionDenied
from blogcms.policy import Action, Resource, authorize
from blogcms.schemas import AssignRoleRequest, PaginatedResponse, UserResponse, UserUpdate
from blogcms.security import Identity
from blogcms.services import user_service

router = APIRouter(prefix="/api/v1/users", tags=["users"])


def _not_found(user_id: int) -> NotFound:
    return NotFound(f"User with ID {user_id} not found")


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


@router.get("", response_model=PaginatedResponse)
async def list_users(
    pagination: PaginationParams = Depends(),
    identity: Identity | None = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    authorize(Action.READ_PRIVATE, Resource.USER, identity)
    return await user_service.get_users(db, pagination.page, pagination.page_size)


@router.get("/me", response_model=UserResponse)
async def get_me(
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
):
    user = await user_service.get_user(db, identity.user_id)
    if user is None:
        raise NotFound("Current user not found")
    return user


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    identity: Identity | None = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    authorize(Action.READ_PRIVATE, Resource.USER, identity, owner_id=user_id)
    user = await user_service.get_user(db, user_id)
    if user is None:
        raise _not_found(user_id)
    return user


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    data: UserUpdate,
    request: Request,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
):
    authorize(Action.UPDATE, Resource.USER, identity, owner_id=user_id)
    if data.is_active is not None and not identity.is_admin:
        raise PermissionDenied("Only administrators can change account status")
    user = await user_service.update_user(db, user_id, data)
    if user is None:
        raise _not_found(user_id)
    activity.log_user_action(identity.username, "UpdateUser", f"user_id={user_id}", _client_ip(request))
    return user


@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: int,
    request: Request,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
):
    message = "Cannot delete your own account" if identity.user_id == user_id else None
    authorize(Action.DELETE, Resource.USER, identity, owner_id=user_id, message=message)
    if not await user_service.delete_user(db, user_id):
        raise _not_found(user_id)
    activity.log_user_action(identity.username, "DeleteUser", f"user_id={user_id}", _client_ip(request))


@router.get("/{user_id}/roles", response_model=list[str])
async def get_user_roles(
    user_id: int,
    identity: Identity | None = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    authorize(Action.READ_PRIVATE, Resource.ROLE, identity)
    if not await user_service.user_exists(db, user_id):
        raise _not_found(user_id)
    return await user_service.get_user_roles(db, user_id)


@router.post("/{user_id}/roles")
async def assign_role(
    user_id: int,
    data: AssignRoleRequest,
    request: Request,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
):
    authorize(Action.MANAGE_ROLES, Resource.ROLE, identity)
    if not await user_service.user_exists(db, user_id):
        raise _not_found(user_id)

    assigned = await user_service.assign_role(db, user_id, data.role_id)
    if assigned:
        activity.log_user_action(
            identity.username, "AssignRole", f"user_id={user_id} role_id={data.role_id}", _client_ip(request)
        )
    return {"assigned": assigned, "roles": await user_service.get_user_roles(db, user_id)}


@router.delete("/{user_id}/roles/{role_id}", status_code=204)
async def revoke_role(
    user_id: int,
    role_id: int,
    request: Request,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
):
    authorize(Action.MANAGE_ROLES, Resource.ROLE, identity)
    if not await user_service.revoke_role(db, user_id, role_id):
        raise NotFound(f"User {user_id} does not hold role {role_id}")
    activity.log_user_action(
        identity.username, "RevokeRole", f"user_id={user_id} role_id={role_id}", _client_ip(request)
    )
