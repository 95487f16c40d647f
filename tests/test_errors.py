"""
Error-shape tests: every failure is answered with a JSON body carrying
``message``; unexpected exceptions become a logged 500.
"""
import pytest
from httpx import ASGITransport, AsyncClient

from blogcms.config import settings
from blogcms.database import get_db
from blogcms.exceptions import BlogError, NotAuthenticated, NotFound, PermissionDenied, ValidationError
from blogcms.main import app


async def _broken_db():
    raise RuntimeError("database exploded")
    yield  # pragma: no cover


@pytest.fixture
def broken_database():
    previous = app.dependency_overrides[get_db]
    app.dependency_overrides[get_db] = _broken_db
    yield
    app.dependency_overrides[get_db] = previous


@pytest.mark.asyncio
async def test_unknown_route(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/nothing-here")
    assert resp.status_code == 404
    assert resp.json() == {"message": "Not Found"}


@pytest.mark.asyncio
async def test_method_not_allowed(async_client: AsyncClient):
    resp = await async_client.patch("/api/v1/tags")
    assert resp.status_code == 405
    assert resp.json() == {"message": "Method Not Allowed"}


@pytest.mark.asyncio
async def test_validation_error_shape(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/auth/register", json={"username": "ab"})
    assert resp.status_code == 400
    body = resp.json()
    assert body["message"] == "Validation failed"
    fields = {e["field"] for e in body["errors"]}
    assert {"username", "email", "password", "full_name"} <= fields


@pytest.mark.asyncio
async def test_bad_path_parameter(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/articles/not-a-number")
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_non_bearer_authorization_is_anonymous(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/users/me", headers={"Authorization": "Basic dXNlcjpwYXNz"})
    assert resp.status_code == 401
    assert resp.json() == {"message": "Authentication required"}


@pytest.mark.asyncio
async def test_unexpected_error_is_500(broken_database):
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.get("/api/v1/tags")
    assert resp.status_code == 500
    assert resp.json() == {"message": "Internal server error"}


@pytest.mark.asyncio
async def test_unexpected_error_details_in_debug(broken_database, monkeypatch):
    monkeypatch.setattr(settings, "DEBUG", True)
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.get("/api/v1/tags")
    assert resp.status_code == 500
    body = resp.json()
    assert body["detail"] == "database exploded"
    assert body["type"] == "RuntimeError"


@pytest.mark.parametrize(
    "exc, status",
    [
        (ValidationError("bad"), 400),
        (NotAuthenticated(), 401),
        (PermissionDenied(), 403),
        (NotFound("gone"), 404),
        (BlogError("boom"), 500),
    ],
)
def test_exception_status_codes(exc, status):
    assert exc.status_code == status
    assert exc.to_dict()["message"] == exc.message


def test_exception_payload_merged():
    exc = ValidationError("bad", payload={"field": "title"})
    assert exc.to_dict() == {"field": "title", "message": "bad"}


def test_only_not_authenticated_sets_challenge_header():
    assert NotAuthenticated().headers == {"WWW-Authenticate": "Bearer"}
    assert PermissionDenied().headers is None
