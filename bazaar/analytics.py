"""
Seller and platform analytics.

The module-level functions are the one implementation of every formula.
They work on plain iterables of records, so the same code serves the API
(over a full store scan) and any caller that already holds raw listings.

Averages and rates over empty sets are 0. Rounding is half-up.
"""
import logging
from collections import Counter
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .cache import MISS, TTLCache
from .database import ListingStore, UserStore
from .errors import ServerFault
from .policy import Action, Actor, authorize
from .records import (
    Listing, User, ROLE_ADMIN, ROLE_SELLER, ROLE_USER, STATUS_ACTIVE, STATUS_SOLD,
)
from .utils import utc_now

logger = logging.getLogger(__name__)

PLATFORM_CACHE_KEY = "analytics:platform"
SELLER_CACHE_PREFIX = "analytics:seller:"

MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
               "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def seller_cache_key(seller_id: str) -> str:
    return SELLER_CACHE_PREFIX + seller_id


def invalidate_for_owner(cache: TTLCache, owner_id: str) -> None:
    """Drop every cached figure a change to ``owner_id``'s listings affects."""
    cache.invalidate(seller_cache_key(owner_id))
    cache.invalidate(PLATFORM_CACHE_KEY)


def round_half_up(value: float, digits: int = 0):
    quantum = Decimal(1).scaleb(-digits)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return int(rounded) if digits == 0 else float(rounded)


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0


def _totals(listings: Sequence[Listing]) -> Dict[str, Any]:
    sold = [l for l in listings if l.status == STATUS_SOLD]
    return {
        "total_listings": len(listings),
        "active_listings": sum(1 for l in listings if l.status == STATUS_ACTIVE),
        "sold_items": len(sold),
        "total_revenue": float(sum(l.price or 0 for l in sold)),
        "views": sum(l.views or 0 for l in listings),
        "average_price": round_half_up(_ratio(sum(l.price or 0 for l in listings), len(listings))),
        "donation_count": sum(1 for l in listings if l.is_donation),
    }


def seller_summary(listings: Iterable[Listing]) -> Dict[str, Any]:
    """Totals for one seller's listings."""
    return _totals(list(listings))


def overview(listings: Iterable[Listing]) -> Dict[str, Any]:
    totals = _totals(list(listings))
    totals["total_views"] = totals.pop("views")
    return totals


def user_stats(users: Iterable[User], listings: Iterable[Listing], now: datetime,
               window_days: int = 30) -> Dict[str, Any]:
    users = list(users)
    roles = Counter(u.role for u in users)
    since = now - timedelta(days=window_days)
    return {
        "total_users": len(users),
        "users": roles.get(ROLE_USER, 0),
        "sellers": roles.get(ROLE_SELLER, 0),
        "admins": roles.get(ROLE_ADMIN, 0),
        "new_users_last_30_days": sum(1 for u in users if u.created_at and u.created_at >= since),
        "active_sellers": len({l.owner_id for l in listings if l.status == STATUS_ACTIVE}),
    }


def performance(totals: Dict[str, Any]) -> Dict[str, Any]:
    total = totals["total_listings"]
    sold = totals["sold_items"]
    return {
        "conversion_rate": round_half_up(_ratio(sold, total) * 100, 1),
        "avg_views_per_listing": round_half_up(_ratio(totals["total_views"], total)),
        "avg_revenue_per_sale": round_half_up(_ratio(totals["total_revenue"], sold), 2),
    }


def category_stats(listings: Iterable[Listing], limit: int = 5) -> Dict[str, Any]:
    counts = Counter(l.category for l in listings if l.category)
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return {
        "top_categories": [{"category": name, "count": count} for name, count in ranked[:limit]],
        "total_categories": len(counts),
    }


def trailing_months(now: datetime, months: int = 6) -> List[Tuple[int, int]]:
    """(year, month) pairs for the last ``months`` calendar months, oldest first."""
    result = []
    year, month = now.year, now.month
    for _ in range(months):
        result.append((year, month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(result))


def monthly_growth(listings: Iterable[Listing], now: datetime, months: int = 6) -> List[Dict[str, Any]]:
    buckets = {
        key: {"month": MONTH_NAMES[key[1] - 1], "year": key[0], "listings": 0, "sold": 0, "revenue": 0.0}
        for key in trailing_months(now, months)
    }
    for listing in listings:
        created = (listing.created_at.year, listing.created_at.month) if listing.created_at else None
        if created in buckets:
            buckets[created]["listings"] += 1
        if listing.sold_at is not None:
            sold = (listing.sold_at.year, listing.sold_at.month)
            if sold in buckets:
                buckets[sold]["sold"] += 1
                buckets[sold]["revenue"] += float(listing.price or 0)
    return list(buckets.values())


def platform_summary(listings: Iterable[Listing], users: Iterable[User], now: datetime,
                     top_limit: int = 5, months: int = 6, window_days: int = 30) -> Dict[str, Any]:
    listings = list(listings)
    totals = overview(listings)
    return {
        "overview": totals,
        "user_stats": user_stats(users, listings, now, window_days),
        "performance": performance(totals),
        "category_stats": category_stats(listings, top_limit),
        "monthly_growth": monthly_growth(listings, now, months),
    }


class AnalyticsService:
    """Authorized, optionally cached access to the analytics formulas."""

    def __init__(
        self,
        listings: ListingStore,
        users: UserStore,
        cache: Optional[TTLCache] = None,
        clock: Callable = utc_now,
        top_limit: int = 5,
        months: int = 6,
        window_days: int = 30,
    ):
        self.listings = listings
        self.users = users
        self.cache = cache
        self.clock = clock
        self.top_limit = top_limit
        self.months = months
        self.window_days = window_days

    def _cached(self, key: str):
        if self.cache is None:
            return MISS
        return self.cache.get(key)

    def _remember(self, key: str, value: Dict[str, Any]) -> None:
        if self.cache is not None:
            self.cache.set(key, value)

    def seller_analytics(self, seller_id: str, actor: Actor,
                         fallback_listings: Optional[Iterable[Listing]] = None) -> Dict[str, Any]:
        authorize(actor, Action.VIEW_ANALYTICS, seller_id=seller_id)

        key = seller_cache_key(seller_id)
        cached = self._cached(key)
        if cached is not MISS:
            return cached

        try:
            listings = self.listings.by_owner(seller_id)
        except ServerFault:
            if fallback_listings is None:
                raise
            logger.warning(f"Seller analytics for {seller_id} computed from caller-supplied listings")
            owned = [l for l in fallback_listings if l.owner_id == seller_id]
            return {**seller_summary(owned), "approximate": True}

        result = {**seller_summary(listings), "approximate": False}
        self._remember(key, result)
        return result

    def platform_analytics(self, actor: Actor,
                           fallback_listings: Optional[Iterable[Listing]] = None) -> Dict[str, Any]:
        authorize(actor, Action.VIEW_ANALYTICS)

        cached = self._cached(PLATFORM_CACHE_KEY)
        if cached is not MISS:
            return cached

        now = self.clock()
        try:
            listings = self.listings.all()
            users = self.users.all()
        except ServerFault:
            if fallback_listings is None:
                raise
            logger.warning("Platform analytics computed from caller-supplied listings")
            summary = platform_summary(fallback_listings, [], now,
                                       self.top_limit, self.months, self.window_days)
            return {**summary, "approximate": True}

        result = {
            **platform_summary(listings, users, now, self.top_limit, self.months, self.window_days),
            "approximate": False,
        }
        self._remember(PLATFORM_CACHE_KEY, result)
        return result
