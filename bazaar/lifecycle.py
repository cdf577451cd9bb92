"""
Listing lifecycle: creation, the sold transition, admin edits, deletion and
the view counter.

Every mutating operation checks authorization through ``bazaar.policy``,
writes through the store, then explicitly invalidates the analytics cache
and publishes an event. Bookkeeping on the owner's user record is best
effort: a failure there is logged and the primary operation still succeeds.
"""
import logging
import math
import uuid
from typing import Any, Callable, Dict, Mapping, Optional

from .analytics import invalidate_for_owner
from .cache import TTLCache
from .database import ListingStore, UserStore
from .errors import NotFoundError, ServerFault, UnauthorizedError, ValidationError
from .events import (
    Event, EventBus, LISTING_CREATED, LISTING_DELETED, LISTING_SOLD, LISTING_UPDATED,
)
from .policy import Action, Actor, authorize
from .records import LISTING_STATUSES, STATUS_ACTIVE, STATUS_SOLD, Listing
from .utils import to_iso, utc_now

logger = logging.getLogger(__name__)

DEFAULT_CONDITION = "good"
IMAGE_PREFIXES = ("data:image", "http://", "https://")

PATCHABLE_FIELDS = {
    "title", "description", "category", "condition", "location", "latitude", "longitude",
    "price", "is_donation", "country_code", "seller_phone", "images", "status",
}


def is_valid_image(entry: Any) -> bool:
    """Inline ``data:image`` payloads and http(s) URLs are accepted."""
    return isinstance(entry, str) and entry.startswith(IMAGE_PREFIXES)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _coerce_price(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool) or value == "":
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(price):
        return None
    return price


def validate_listing_fields(data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Check a listing submission and return the cleaned fields.

    Checks run in a fixed order and the first failure is raised, each with
    its own error code. Images that are neither inline data nor http(s)
    URLs are dropped; if none survive the submission is rejected.
    """
    title = _text(data.get("title"))
    if len(title) < 3:
        raise ValidationError("Title must be at least 3 characters long.", code="title_too_short")

    description = _text(data.get("description"))
    if len(description) < 10:
        raise ValidationError(
            "Description must be at least 10 characters long.", code="description_too_short"
        )

    seller_phone = _text(data.get("seller_phone"))
    if not seller_phone:
        raise ValidationError("Seller phone number is required.", code="seller_phone_required")

    category = _text(data.get("category"))
    if not category:
        raise ValidationError("Category is required.", code="category_required")

    location = _text(data.get("location"))
    if not location:
        raise ValidationError("Location is required.", code="location_required")

    images = data.get("images")
    if not isinstance(images, (list, tuple)) or len(images) == 0:
        raise ValidationError("At least one image is required.", code="images_required")

    is_donation = bool(data.get("is_donation") or False)
    if is_donation:
        price = 0.0
    else:
        price = _coerce_price(data.get("price"))
        if price is None or price < 0:
            raise ValidationError(
                "Valid price is required unless marked as donation.", code="price_invalid"
            )

    valid_images = [img for img in images if is_valid_image(img)]
    if not valid_images:
        raise ValidationError("No valid images provided.", code="no_valid_images")

    return {
        "title": title,
        "description": description,
        "seller_phone": seller_phone,
        "category": category,
        "location": location,
        "images": valid_images,
        "is_donation": is_donation,
        "price": price,
    }


class ListingLifecycle:
    """Creates and transitions listings on behalf of an actor."""

    def __init__(
        self,
        listings: ListingStore,
        users: Optional[UserStore] = None,
        cache: Optional[TTLCache] = None,
        events: Optional[EventBus] = None,
        clock: Callable = utc_now,
        default_country_code: str = "+254",
    ):
        self.listings = listings
        self.users = users
        self.cache = cache
        self.events = events
        self.clock = clock
        self.default_country_code = default_country_code

    # -- helpers -----------------------------------------------------------

    def _load(self, listing_id: str) -> Listing:
        listing = self.listings.get(listing_id)
        if listing is None:
            raise NotFoundError("listing", listing_id)
        return listing

    def _after_mutation(self, name: str, listing: Listing, actor: Optional[Actor], **payload) -> None:
        if self.cache is not None:
            invalidate_for_owner(self.cache, listing.owner_id)
        if self.events is not None:
            self.events.publish(Event(
                name=name,
                subject_id=listing.id,
                actor_id=actor.identity if actor else None,
                payload={"owner_id": listing.owner_id, **payload},
            ))

    def _owner_bookkeeping(self, owner_id: str, delta: int, promote: bool = False) -> None:
        if self.users is None:
            return
        try:
            self.users.adjust_listing_count(owner_id, delta)
            if promote and self.users.promote_to_seller(owner_id, to_iso(self.clock())):
                logger.info(f"User {owner_id} upgraded to seller")
        except ServerFault:
            logger.warning(f"Could not update listing count for user {owner_id}", exc_info=True)

    # -- operations --------------------------------------------------------

    def create(self, data: Mapping[str, Any], actor: Actor) -> Listing:
        authorize(actor, Action.CREATE)
        fields = validate_listing_fields(data)

        now = self.clock()
        listing = Listing(
            id=uuid.uuid4().hex,
            owner_id=actor.identity,
            condition=_text(data.get("condition")) or DEFAULT_CONDITION,
            country_code=_text(data.get("country_code")) or self.default_country_code,
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
            status=STATUS_ACTIVE,
            views=0,
            created_at=now,
            updated_at=now,
            **fields,
        )
        self.listings.insert(listing)
        logger.info(f"Listing created: {listing.title} by user {listing.owner_id}")

        self._owner_bookkeeping(listing.owner_id, +1, promote=True)
        self._after_mutation(LISTING_CREATED, listing, actor)
        return listing

    def mark_sold(self, listing_id: str, actor: Actor) -> Listing:
        if not actor.is_authenticated:
            raise UnauthorizedError()
        listing = self._load(listing_id)
        authorize(actor, Action.MARK_SOLD, owner_id=listing.owner_id)

        if listing.is_sold:
            logger.info(f"Listing {listing.id} already sold; keeping sold_at {to_iso(listing.sold_at)}")
            return listing
        if listing.status != STATUS_ACTIVE:
            raise ValidationError(
                f"Only active listings can be marked as sold (status is {listing.status}).",
                code="invalid_status_transition",
            )

        now = self.clock()
        listing.status = STATUS_SOLD
        listing.sold_at = now
        listing.updated_at = now
        self.listings.save(listing)
        logger.info(f"Listing marked as sold: {listing.title}")

        self._after_mutation(LISTING_SOLD, listing, actor, price=listing.price)
        return listing

    def delete(self, listing_id: str, actor: Actor) -> None:
        if not actor.is_authenticated:
            raise UnauthorizedError()
        listing = self._load(listing_id)
        authorize(actor, Action.DELETE, owner_id=listing.owner_id)

        if not self.listings.delete(listing.id):
            raise NotFoundError("listing", listing_id)
        logger.info(f"Listing deleted: {listing.title} by user {actor.identity}")

        self._owner_bookkeeping(listing.owner_id, -1)
        self._after_mutation(LISTING_DELETED, listing, actor)

    def update(self, listing_id: str, patch: Mapping[str, Any], actor: Actor) -> Listing:
        authorize(actor, Action.UPDATE)
        listing = self._load(listing_id)

        unknown = sorted(set(patch) - PATCHABLE_FIELDS)
        if unknown:
            raise ValidationError(
                f"Fields cannot be changed: {', '.join(unknown)}", code="immutable_field"
            )

        merged = {name: getattr(listing, name) for name in PATCHABLE_FIELDS}
        merged.update(patch)
        fields = validate_listing_fields(merged)

        status = _text(merged.get("status")) or listing.status
        if status not in LISTING_STATUSES:
            raise ValidationError(f"Invalid status: {status}", code="invalid_status")

        now = self.clock()
        for name, value in fields.items():
            setattr(listing, name, value)
        listing.condition = _text(merged.get("condition")) or DEFAULT_CONDITION
        listing.country_code = _text(merged.get("country_code")) or self.default_country_code
        listing.latitude = merged.get("latitude")
        listing.longitude = merged.get("longitude")

        if status == STATUS_SOLD and listing.sold_at is None:
            listing.sold_at = now
        elif status != STATUS_SOLD:
            listing.sold_at = None
        listing.status = status
        listing.updated_at = now

        self.listings.save(listing)
        logger.info(f"Listing updated by admin {actor.identity}: {listing.title}")

        self._after_mutation(LISTING_UPDATED, listing, actor, fields=sorted(patch))
        return listing

    def increment_view(self, listing_id: str) -> int:
        views = self.listings.increment_views(listing_id)
        if views is None:
            raise NotFoundError("listing", listing_id)
        return views

    def view(self, listing_id: str, actor: Actor, count_view: bool = True) -> Listing:
        """
        Fetch a listing for its detail page.

        A view is counted for everyone except the owner. Counting is a side
        effect of the read, so a failed increment is only logged.
        """
        listing = self._load(listing_id)
        if count_view and actor.identity != listing.owner_id:
            try:
                listing.views = self.increment_view(listing_id)
            except (ServerFault, NotFoundError):
                logger.error(f"View count update failed for listing {listing_id}", exc_info=True)
        return listing


