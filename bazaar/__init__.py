"""
Bazaar classifieds marketplace API package
"""
from .analytics import AnalyticsService, platform_summary, seller_summary
from .cache import MISS, TTLCache
from .database import ListingStore, UserStore, init_db
from .errors import (
    ForbiddenError,
    MarketplaceError,
    NotFoundError,
    ServerFault,
    UnauthorizedError,
    ValidationError,
)
from .events import Event, EventBus
from .lifecycle import ListingLifecycle, validate_listing_fields
from .policy import Action, Actor, authorize
from .records import Listing, ListingQuery, User

__version__ = "1.0.0"

__all__ = [
    "Action",
    "Actor",
    "AnalyticsService",
    "Event",
    "EventBus",
    "ForbiddenError",
    "Listing",
    "ListingLifecycle",
    "ListingQuery",
    "ListingStore",
    "MISS",
    "MarketplaceError",
    "NotFoundError",
    "ServerFault",
    "TTLCache",
    "UnauthorizedError",
    "User",
    "UserStore",
    "ValidationError",
    "authorize",
    "init_db",
    "platform_summary",
    "seller_summary",
    "validate_listing_fields",
]
