from fastapi import Depends, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from blogcms.config import settings
from blogcms.exceptions import NotAuthenticated
from blogcms.security import Identity, validate_token

# auto_error=False: a missing or non-bearer header means "anonymous",
# and each endpoint decides whether that is acceptable.
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Identity | None:
    """
    Resolve the caller from the bearer token.

    Returns None for anonymous requests and for malformed, expired or
    mis-signed tokens; such requests are treated as unauthenticated.
    """
    if credentials is None or not credentials.credentials:
        return None
    return validate_token(credentials.credentials)


async def require_identity(
    identity: Identity | None = Depends(get_current_identity),
) -> Identity:
    if identity is None:
        raise NotAuthenticated()
    return identity


class PaginationParams:
    """
    Reusable FastAPI dependency that parses and validates pagination
    query parameters.

    Attributes
    ----------
    page:
        1-based page number (minimum 1).
    page_size:
        Number of items per page, clamped to ``settings.MAX_PAGE_SIZE``
        regardless of the value supplied by the caller.
    """

    def __init__(
        self,
        page: int = Query(1, ge=1, description="Page number (1-based)."),
        page_size: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            le=100,
            description="Number of items returned per page (max 100).",
        ),
    ) -> None:
        self.page = page
        self.page_size = min(page_size, settings.MAX_PAGE_SIZE)
