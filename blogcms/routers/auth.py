from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from blogcms.activity import ActivityLogger, get_activity_logger
from blogcms.database import get_db
from blogcms.dependencies import require_identity
from blogcms.exceptions import NotAuthenticated
from blogcms.schemas import AuthResponse, LoginRequest, UserCreate
from blogcms.security import Identity, issue_token
from blogcms.services import user_service

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def _auth_payload(user: dict) -> dict:
    issued = issue_token(
        user["id"], user["username"], user["email"], user["full_name"], user["roles"]
    )
    return {
        "token": issued.token,
        "user": user,
        "roles": user["roles"],
        "expires_at": issued.expires_at,
    }


@router.post("/login", response_model=AuthResponse)
async def login(
    data: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
):
    ip = _client_ip(request)
    if not await user_service.authenticate(db, data.username, data.password):
        activity.log_login(data.username, False, ip, "invalid credentials")
        raise NotAuthenticated("Invalid username or password")

    user = await user_service.get_user_by_username(db, data.username)
    activity.log_login(user["username"], True, ip)
    return _auth_payload(user)


@router.post("/register", status_code=201)
async def register(
    data: UserCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
):
    user = await user_service.create_user(db, data)
    activity.log_user_action(user["username"], "Register", "new user registration", _client_ip(request))
    return {
        "message": "Registration successful. Please login.",
        "user_id": user["id"],
        "username": user["username"],
    }


@router.get("/validate")
async def validate(identity: Identity = Depends(require_identity)):
    return {
        "message": "Token is valid",
        "is_valid": True,
        "user_id": identity.user_id,
        "username": identity.username,
        "email": identity.email,
        "roles": sorted(identity.roles),
        "expires_at": identity.expires_at,
    }


@router.post("/refresh", response_model=AuthResponse)
async def refresh(
    request: Request,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
):
    """Reissue a token carrying the user's current roles."""
    user = await user_service.get_user(db, identity.user_id)
    if user is None or not user["is_active"]:
        raise NotAuthenticated("User not found")
    activity.log_user_action(user["username"], "RefreshToken", "token refreshed", _client_ip(request))
    return _auth_payload(user)
