"""
Identity resolution and profile sync.

The identity provider signs session tokens; this module checks them with the
shared secret and keeps the local user record in step with the profile
claims. Roles live on the user record only.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

import jwt

from .analytics import PLATFORM_CACHE_KEY
from .cache import TTLCache
from .config import config
from .database import UserStore
from .errors import UnauthorizedError
from .policy import ANONYMOUS, Actor
from .records import ROLE_ADMIN, ROLE_USER, User

logger = logging.getLogger(__name__)


def get_bearer_token(auth_header: Optional[str]) -> Optional[str]:
    if not auth_header:
        return None
    parts = auth_header.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    raise UnauthorizedError("Malformed Authorization header", code="invalid_token")


def decode_identity_token(token: str) -> Dict[str, Any]:
    options = {"require": ["sub", "exp"]}
    try:
        return jwt.decode(
            token,
            config.IDENTITY_JWT_SECRET,
            algorithms=config.IDENTITY_JWT_ALGORITHMS,
            audience=config.IDENTITY_JWT_AUDIENCE,
            issuer=config.IDENTITY_JWT_ISSUER,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Session token expired", code="token_expired")
    except jwt.PyJWTError as e:
        logger.info(f"Rejected identity token: {e}")
        raise UnauthorizedError("Invalid session token", code="invalid_token")


def display_name(first_name: Optional[str], last_name: Optional[str]) -> str:
    if first_name and last_name:
        return f"{first_name} {last_name}"
    return first_name or "User"


def is_admin_email(email: Optional[str]) -> bool:
    if not email:
        return False
    return email.strip().lower() in config.ADMIN_EMAILS


def sync_user(
    users: UserStore,
    identity: str,
    now: datetime,
    email: Optional[str] = None,
    name: Optional[str] = None,
    avatar: Optional[str] = None,
    bio: Optional[str] = None,
    cache: Optional[TTLCache] = None,
) -> User:
    """
    Create or refresh the user record for ``identity``.

    New users start as plain users unless their email is on the admin list;
    an existing user on the admin list is promoted. Nobody is demoted here.
    Creating a user or changing a role drops the cached platform figures.
    """
    seeded_admin = is_admin_email(email)
    user = users.get(identity)
    stats_changed = False
    if user is None:
        user = User(
            id=identity,
            email=email or "",
            name=name or "User",
            avatar=avatar or "",
            bio=bio or "",
            role=ROLE_ADMIN if seeded_admin else ROLE_USER,
            last_login=now,
            created_at=now,
            updated_at=now,
        )
        stats_changed = True
        logger.info(f"Created user {identity} with role {user.role}")
    else:
        user.email = email if email is not None else user.email
        user.name = name if name is not None else user.name
        user.avatar = avatar if avatar is not None else user.avatar
        user.bio = bio if bio is not None else user.bio
        user.last_login = now
        user.updated_at = now
        if seeded_admin and user.role != ROLE_ADMIN:
            logger.info(f"Promoting {identity} to admin")
            user.role = ROLE_ADMIN
            stats_changed = True

    users.upsert(user)
    if stats_changed and cache is not None:
        cache.invalidate(PLATFORM_CACHE_KEY)
    return user


def actor_from_claims(users: UserStore, claims: Dict[str, Any], now: datetime,
                      cache: Optional[TTLCache] = None) -> Actor:
    """
    Build the actor for verified ``claims``, resolving the role from the
    user record. An identity seen for the first time is synced from its
    profile claims before the role lookup is retried.
    """
    identity = str(claims["sub"])
    email = claims.get("email")
    name = claims.get("name") or (
        display_name(claims.get("given_name"), claims.get("family_name"))
        if claims.get("given_name") else None
    )
    avatar = claims.get("picture")

    user = users.get(identity)
    if user is None:
        user = sync_user(users, identity, now, email=email, name=name, avatar=avatar, cache=cache)

    return Actor(
        identity=identity,
        role=user.role,
        email=email or user.email,
        name=name or user.name,
        avatar=avatar or user.avatar,
    )


def resolve_actor(users: UserStore, auth_header: Optional[str], now: datetime,
                  cache: Optional[TTLCache] = None) -> Actor:
    token = get_bearer_token(auth_header)
    if token is None:
        return ANONYMOUS
    return actor_from_claims(users, decode_identity_token(token), now, cache=cache)
