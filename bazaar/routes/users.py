"""
User profile and role management route handlers.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request

from ..analytics import PLATFORM_CACHE_KEY
from ..auth import display_name, sync_user
from ..database import UserStore
from ..dependencies import get_user_store, require_actor
from ..errors import NotFoundError, ValidationError
from ..events import Event, USER_ROLE_CHANGED
from ..models import RoleUpdate, UserOut, UserResponse, UserSync, UsersResponse
from ..policy import Action, Actor, authorize
from ..records import USER_ROLES
from ..utils import to_iso, utc_now

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/users", tags=["users"])


@router.post("/sync", response_model=UserResponse)
async def sync_api_user(
    request: Request,
    payload: Optional[UserSync] = None,
    actor: Actor = Depends(require_actor),
    users: UserStore = Depends(get_user_store),
):
    """Create or refresh the caller's profile from identity-provider attributes."""
    payload = payload or UserSync()
    name = display_name(payload.first_name, payload.last_name) if payload.first_name else actor.name
    user = sync_user(
        users,
        actor.identity,
        utc_now(),
        email=payload.email or actor.email,
        name=name,
        avatar=payload.image_url or actor.avatar,
        bio=payload.bio,
        cache=request.app.state.cache,
    )
    return UserResponse(user=UserOut.from_record(user))


@router.get("/profile/{user_id}", response_model=UserResponse)
async def get_api_user_profile(
    user_id: str,
    actor: Actor = Depends(require_actor),
    users: UserStore = Depends(get_user_store),
):
    authorize(actor, Action.VIEW_PROFILE, seller_id=user_id)
    user = users.get(user_id)
    if user is None:
        raise NotFoundError("user", user_id)
    return UserResponse(user=UserOut.from_record(user))


@router.get("", response_model=UsersResponse)
async def get_api_users(
    actor: Actor = Depends(require_actor),
    users: UserStore = Depends(get_user_store),
):
    authorize(actor, Action.ADMINISTER)
    return UsersResponse(users=[UserOut.from_record(u) for u in users.all()])


@router.patch("/{user_id}/role", response_model=UserResponse)
async def update_api_user_role(
    user_id: str,
    payload: RoleUpdate,
    request: Request,
    actor: Actor = Depends(require_actor),
    users: UserStore = Depends(get_user_store),
):
    authorize(actor, Action.ADMINISTER)
    if payload.role not in USER_ROLES:
        raise ValidationError(f"Invalid role: {payload.role}", code="invalid_role")

    user = users.set_role(user_id, payload.role, to_iso(utc_now()))
    if user is None:
        raise NotFoundError("user", user_id)
    logger.info(f"Role of {user_id} set to {payload.role} by {actor.identity}")

    request.app.state.cache.invalidate(PLATFORM_CACHE_KEY)
    request.app.state.events.publish(
        Event(name=USER_ROLE_CHANGED, subject_id=user_id, actor_id=actor.identity,
              payload={"role": payload.role})
    )
    return UserResponse(user=UserOut.from_record(user))
