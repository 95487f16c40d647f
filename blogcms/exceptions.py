"""
Exception hierarchy shared by services, the authorization policy and the
routers.  ``main.py`` installs one handler for ``BlogError`` that renders
``to_dict()`` with the exception's status code.
"""


class BlogError(Exception):
    """Base class for every error that maps onto a client-visible response."""

    status_code = 500

    def __init__(self, message: str, payload: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.payload = payload

    def to_dict(self) -> dict:
        rv = dict(self.payload or ())
        rv["message"] = self.message
        return rv

    @property
    def headers(self) -> dict | None:
        return None


class ValidationError(BlogError):
    """Duplicate unique value, dangling reference or otherwise invalid input."""

    status_code = 400


class NotAuthenticated(BlogError):
    status_code = 401

    def __init__(self, message: str = "Authentication required", payload: dict | None = None) -> None:
        super().__init__(message, payload)

    @property
    def headers(self) -> dict | None:
        return {"WWW-Authenticate": "Bearer"}


class PermissionDenied(BlogError):
    status_code = 403

    def __init__(self, message: str = "Access denied", payload: dict | None = None) -> None:
        super().__init__(message, payload)


class NotFound(BlogError):
    status_code = 404
