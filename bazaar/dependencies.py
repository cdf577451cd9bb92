"""
FastAPI dependencies wiring stores and services to the request.
"""
from typing import Optional

from fastapi import Depends, Header, Request

from .analytics import AnalyticsService
from .auth import resolve_actor
from .config import config
from .database import ListingStore, UserStore
from .errors import UnauthorizedError
from .lifecycle import ListingLifecycle
from .policy import Actor
from .utils import utc_now


def get_listing_store() -> ListingStore:
    return ListingStore(config.DB_PATH)


def get_user_store() -> UserStore:
    return UserStore(config.DB_PATH)


def get_actor(
    request: Request,
    authorization: Optional[str] = Header(None),
    users: UserStore = Depends(get_user_store),
) -> Actor:
    """The caller, or an anonymous actor when no token is sent."""
    return resolve_actor(users, authorization, utc_now(), cache=request.app.state.cache)


def require_actor(actor: Actor = Depends(get_actor)) -> Actor:
    if not actor.is_authenticated:
        raise UnauthorizedError()
    return actor


def get_lifecycle(
    request: Request,
    listings: ListingStore = Depends(get_listing_store),
    users: UserStore = Depends(get_user_store),
) -> ListingLifecycle:
    return ListingLifecycle(
        listings,
        users=users,
        cache=request.app.state.cache,
        events=request.app.state.events,
        default_country_code=config.DEFAULT_COUNTRY_CODE,
    )


def get_analytics(
    request: Request,
    listings: ListingStore = Depends(get_listing_store),
    users: UserStore = Depends(get_user_store),
) -> AnalyticsService:
    return AnalyticsService(
        listings,
        users,
        cache=request.app.state.cache,
        top_limit=config.TOP_CATEGORIES_LIMIT,
        months=config.GROWTH_MONTHS,
        window_days=config.NEW_USER_WINDOW_DAYS,
    )
