from urllib.parse import parse_qs

from starlette.requests import cookie_parser
from starlette.types import ASGIApp, Receive, Scope, Send

from blogcms.config import settings


class AuthCookieMiddleware:
    """
    Pure ASGI middleware that lets browser clients authenticate with a
    cookie instead of an ``Authorization`` header.

    - When the request carries the ``AUTH_COOKIE_NAME`` cookie its value
      becomes ``Authorization: Bearer <token>``, replacing any header.
    - Otherwise, when no ``Authorization`` header is present and
      ``ALLOW_QUERY_TOKEN`` is enabled, a ``?token=`` query parameter is
      promoted the same way.  This fallback exists for diagnostics only.

    Token validation itself happens later in ``dependencies.py``.
    """

    def __init__(
        self,
        app: ASGIApp,
        cookie_name: str | None = None,
        allow_query_token: bool | None = None,
    ) -> None:
        self.app = app
        self.cookie_name = cookie_name or settings.AUTH_COOKIE_NAME
        self.allow_query_token = (
            settings.ALLOW_QUERY_TOKEN if allow_query_token is None else allow_query_token
        )

    def _find_token(self, headers: list[tuple[bytes, bytes]], query_string: bytes) -> str | None:
        has_authorization = False
        for name, value in headers:
            if name == b"cookie":
                token = cookie_parser(value.decode("latin-1")).get(self.cookie_name)
                if token:
                    return token
            elif name == b"authorization":
                has_authorization = True

        if not has_authorization and self.allow_query_token and query_string:
            values = parse_qs(query_string.decode("latin-1")).get("token")
            if values and values[0]:
                return values[0]
        return None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = list(scope.get("headers", []))
        token = self._find_token(headers, scope.get("query_string", b""))
        if token:
            headers = [(k, v) for k, v in headers if k != b"authorization"]
            headers.append((b"authorization", f"Bearer {token}".encode("latin-1")))
            scope = dict(scope, headers=headers)

        await self.app(scope, receive, send)
