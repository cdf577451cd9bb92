"""
Authorization policy.

``authorize`` is a pure decision: it looks only at the actor and the target
identities passed in and raises when the action is not allowed. "Is admin"
has exactly one source of truth, the actor's resolved role.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import ForbiddenError, UnauthorizedError
from .records import ROLE_ADMIN


class Action(str, Enum):
    READ = "read"
    CREATE = "create"
    MARK_SOLD = "mark_sold"
    DELETE = "delete"
    UPDATE = "update"
    VIEW_ANALYTICS = "view_analytics"
    VIEW_PROFILE = "view_profile"
    ADMINISTER = "administer"


@dataclass(frozen=True)
class Actor:
    """The caller of an operation, as resolved from the identity provider."""

    identity: Optional[str] = None
    role: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    avatar: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.identity)

    @property
    def is_admin(self) -> bool:
        return self.is_authenticated and self.role == ROLE_ADMIN


ANONYMOUS = Actor()


def authorize(
    actor: Actor,
    action: Action,
    owner_id: Optional[str] = None,
    seller_id: Optional[str] = None,
) -> None:
    """
    Raise if ``actor`` may not perform ``action``.

    ``owner_id`` is the owner of the target listing for mark-sold/delete,
    ``seller_id`` the seller whose analytics or profile is requested. A
    view-analytics check without ``seller_id`` means platform-wide analytics.
    """
    if action == Action.READ:
        return

    if not actor.is_authenticated:
        raise UnauthorizedError()

    if action == Action.CREATE:
        return

    if action in (Action.MARK_SOLD, Action.DELETE):
        if owner_id is None or actor.identity != owner_id:
            raise ForbiddenError(action.value, "only the listing owner may do this")
        return

    if action == Action.UPDATE:
        if not actor.is_admin:
            raise ForbiddenError(action.value, "only administrators can edit listings")
        return

    if action == Action.VIEW_ANALYTICS:
        if seller_id is None:
            if not actor.is_admin:
                raise ForbiddenError(action.value, "admin access required")
            return
        if actor.identity != seller_id:
            raise ForbiddenError(action.value, "sellers can only view their own analytics")
        return

    if action == Action.VIEW_PROFILE:
        if actor.identity != seller_id and not actor.is_admin:
            raise ForbiddenError(action.value, "users can only view their own profile")
        return

    if action == Action.ADMINISTER:
        if not actor.is_admin:
            raise ForbiddenError(action.value, "admin access required")
        return

    raise ForbiddenError(str(action), "unknown action")


def is_permitted(actor: Actor, action: Action, owner_id: Optional[str] = None,
                 seller_id: Optional[str] = None) -> bool:
    try:
        authorize(actor, action, owner_id=owner_id, seller_id=seller_id)
    except (ForbiddenError, UnauthorizedError):
        return False
    return True
