import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from blogcms.activity import get_activity_logger
from blogcms.bootstrap import init_database
from blogcms.cache import cache
from blogcms.config import settings
from blogcms.database import async_session, engine
from blogcms.dependencies import bearer_scheme
from blogcms.exceptions import BlogError
from blogcms.middleware import AuthCookieMiddleware
from blogcms.routers import articles, auth, comments, roles, tags, users
from blogcms.security import validate_token

VERSION = "1.0.0"

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    configure_logging()
    try:
        await cache.connect()
    except Exception:
        logger.warning("Redis unavailable; running without cache")
    await init_database(engine, async_session, seed_demo=settings.SEED_DEMO_DATA)
    yield
    # Shutdown
    await cache.disconnect()


app = FastAPI(
    title="Blog CMS API",
    description="Blog content-management backend: users, roles, articles, tags and comments",
    version=VERSION,
    lifespan=lifespan,
)

# Middleware
app.add_middleware(AuthCookieMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers

@app.exception_handler(BlogError)
async def blog_error_handler(request: Request, exc: BlogError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in err["loc"] if p != "body"), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"message": "Validation failed", "errors": errors})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def _username_for(request: Request) -> str | None:
    credentials = await bearer_scheme(request)
    if credentials is None:
        return None
    identity = validate_token(credentials.credentials)
    return identity.username if identity else None


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    username = await _username_for(request)
    get_activity_logger().log_error(
        f"Unhandled exception on {request.method} {request.url.path}", exc, username
    )
    content = {"message": "Internal server error"}
    if settings.DEBUG:
        content["detail"] = str(exc)
        content["type"] = type(exc).__name__
    return JSONResponse(status_code=500, content=content)


# Routers
app.include_router(auth.router)
app.include_router(articles.router)
app.include_router(comments.router)
app.include_router(tags.router)
app.include_router(users.router)
app.include_router(roles.router)


@app.get("/health")
async def health():
    return {"status": "healthy", "version": VERSION, "cache": cache.stats}
