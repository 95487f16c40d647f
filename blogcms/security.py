"""
Credential and bearer-token primitives.

- Passwords are stored as salted bcrypt hashes.
- Tokens are HS256 JWTs signed with ``settings.JWT_SECRET_KEY``.  They
  carry the user id as ``sub`` plus name, email, full name and one
  ``roles`` entry per role, and expire ``ACCESS_TOKEN_EXPIRE_MINUTES``
  after issue.  Validation checks signature, issuer, audience and expiry
  with no clock-skew leeway.  No server-side session state exists.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, NamedTuple

import bcrypt
from jose import JWTError, jwt

from blogcms.config import settings

logger = logging.getLogger(__name__)

ADMIN = "Admin"
MODERATOR = "Moderator"
USER = "User"
STANDARD_ROLES: tuple[str, ...] = (ADMIN, MODERATOR, USER)


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash.
        return False


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Identity:
    """The authenticated caller, reconstructed from token claims alone."""

    user_id: int
    username: str
    email: str | None = None
    full_name: str | None = None
    roles: frozenset[str] = field(default_factory=frozenset)
    expires_at: datetime | None = None

    def has_role(self, *names: str) -> bool:
        return any(name in self.roles for name in names)

    @property
    def is_admin(self) -> bool:
        return ADMIN in self.roles

    @property
    def is_staff(self) -> bool:
        """Admin or Moderator."""
        return self.has_role(ADMIN, MODERATOR)


class IssuedToken(NamedTuple):
    token: str
    expires_at: datetime


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

def issue_token(
    user_id: int,
    username: str,
    email: str,
    full_name: str | None,
    roles: Iterable[str],
    issued_at: datetime | None = None,
) -> IssuedToken:
    """
    Sign a token for the given identity.

    *issued_at* defaults to now; passing an explicit value is how callers
    (and tests) produce tokens with a known expiry.
    """
    issued_at = issued_at or datetime.now(timezone.utc)
    expires_at = issued_at + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {
        "sub": str(user_id),
        "name": username,
        "email": email,
        "fullname": full_name or "",
        "roles": list(roles),
        "iss": settings.JWT_ISSUER,
        "aud": settings.JWT_AUDIENCE,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    token = jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    return IssuedToken(token=token, expires_at=expires_at)


def validate_token(token: str) -> Identity | None:
    """
    Return the ``Identity`` carried by *token*, or None when the token is
    malformed, mis-signed, expired, or issued for another issuer/audience.
    """
    try:
        claims = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
            options={"leeway": 0},
        )
        user_id = int(claims["sub"])
    except (JWTError, KeyError, TypeError, ValueError) as exc:
        logger.debug("Rejected bearer token: %s", exc)
        return None

    roles = claims.get("roles") or []
    if isinstance(roles, str):
        roles = [roles]
    return Identity(
        user_id=user_id,
        username=claims.get("name", ""),
        email=claims.get("email"),
        full_name=claims.get("fullname") or None,
        roles=frozenset(roles),
        expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
    )
