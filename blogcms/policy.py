"""
Authorization policy.

``decide`` is a pure function of (action, resource, acting identity,
resource owner id).  It never touches the database; routers load the
target entity first and pass its owner id in.

Rules
-----
- READ_PUBLIC is open to everyone, including anonymous callers.
- Every other action needs an identity.
- READ_PRIVATE (drafts, raw comment lists, user records, roles) is for
  Admin/Moderator; an article's author and a user reading their own
  record are also allowed.
- CREATE is open to any identity, except tags (Admin/Moderator).
- UPDATE: owner or Admin/Moderator for articles and comments; tags are
  Admin/Moderator only; users are self or Admin.
- DELETE: owner or Admin for articles and comments; tags and users are
  Admin only and nobody may delete their own account.
- MODERATE (approve/reject comments, reset view counts) is Admin/Moderator.
- MANAGE_ROLES (assign/revoke) is Admin only.
"""
import enum

from blogcms.exceptions import NotAuthenticated, PermissionDenied
from blogcms.security import Identity


class Action(str, enum.Enum):
    READ_PUBLIC = "read_public"
    READ_PRIVATE = "read_private"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    MODERATE = "moderate"
    MANAGE_ROLES = "manage_roles"


class Resource(str, enum.Enum):
    ARTICLE = "article"
    COMMENT = "comment"
    TAG = "tag"
    USER = "user"
    ROLE = "role"


class Decision(str, enum.Enum):
    ALLOW = "allow"
    FORBIDDEN = "forbidden"
    UNAUTHENTICATED = "unauthenticated"


_OWNED = frozenset({Resource.ARTICLE, Resource.COMMENT})


def _allow_if(condition: bool) -> Decision:
    return Decision.ALLOW if condition else Decision.FORBIDDEN


def decide(
    action: Action,
    resource: Resource,
    identity: Identity | None,
    owner_id: int | None = None,
) -> Decision:
    """
    Return the decision for *identity* performing *action* on *resource*.

    *owner_id* is the author/user id of the target entity; for
    ``Resource.USER`` it is the id of the target user itself.
    """
    if action is Action.READ_PUBLIC:
        return Decision.ALLOW
    if identity is None:
        return Decision.UNAUTHENTICATED

    is_owner = owner_id is not None and owner_id == identity.user_id

    if action is Action.READ_PRIVATE:
        if resource in _OWNED or resource is Resource.USER:
            return _allow_if(is_owner or identity.is_staff)
        return _allow_if(identity.is_staff)

    if action is Action.CREATE:
        if resource in (Resource.TAG, Resource.ROLE):
            return _allow_if(identity.is_staff)
        return Decision.ALLOW

    if action is Action.UPDATE:
        if resource in _OWNED:
            return _allow_if(is_owner or identity.is_staff)
        if resource is Resource.USER:
            return _allow_if(is_owner or identity.is_admin)
        return _allow_if(identity.is_staff)

    if action is Action.DELETE:
        if resource in _OWNED:
            return _allow_if(is_owner or identity.is_admin)
        if resource is Resource.USER:
            return _allow_if(identity.is_admin and not is_owner)
        return _allow_if(identity.is_admin)

    if action is Action.MODERATE:
        return _allow_if(identity.is_staff)

    if action is Action.MANAGE_ROLES:
        return _allow_if(identity.is_admin)

    return Decision.FORBIDDEN


def authorize(
    action: Action,
    resource: Resource,
    identity: Identity | None,
    owner_id: int | None = None,
    message: str | None = None,
) -> Identity | None:
    """
    Raise ``NotAuthenticated`` / ``PermissionDenied`` unless ``decide``
    allows the call.  Returns *identity* so routers can chain on it.
    """
    decision = decide(action, resource, identity, owner_id)
    if decision is Decision.UNAUTHENTICATED:
        raise NotAuthenticated()
    if decision is Decision.FORBIDDEN:
        raise PermissionDenied(message or f"Not allowed to {action.value.replace('_', ' ')} this {resource.value}")
    return identity
