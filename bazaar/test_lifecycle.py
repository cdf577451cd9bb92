"""
Tests for listing creation, transitions, admin edits and the view counter.
"""
import threading

import pytest

from .analytics import PLATFORM_CACHE_KEY, seller_cache_key
from .cache import MISS
from .conftest import listing_payload, make_user
from .errors import ForbiddenError, NotFoundError, UnauthorizedError, ValidationError
from .events import LISTING_CREATED, LISTING_DELETED, LISTING_SOLD
from .lifecycle import validate_listing_fields
from .policy import ANONYMOUS


def _code(exc_info):
    return exc_info.value.code


# -- create ---------------------------------------------------------------

def test_create_sets_defaults(lifecycle, seller_a, listing_store):
    listing = lifecycle.create(listing_payload(), seller_a)

    assert listing.status == "active"
    assert listing.views == 0
    assert listing.owner_id == "user_a"
    assert listing.condition == "good"
    assert listing.country_code == "+254"
    assert listing.images == ["https://img.example.com/table.jpg"]
    assert listing.sold_at is None

    stored = listing_store.get(listing.id)
    assert stored.title == "Wooden coffee table"
    assert stored.price == 4500


def test_create_trims_text(lifecycle, seller_a):
    listing = lifecycle.create(listing_payload(title="  Lamp  ", description="  Brass desk lamp, works  "), seller_a)
    assert listing.title == "Lamp"
    assert listing.description == "Brass desk lamp, works"


def test_short_title_is_rejected(lifecycle, seller_a):
    with pytest.raises(ValidationError) as exc:
        lifecycle.create(listing_payload(title="ab"), seller_a)
    assert _code(exc) == "title_too_short"
    assert "Title" in exc.value.message


def test_donation_forces_price_to_zero(lifecycle, seller_a):
    listing = lifecycle.create(listing_payload(is_donation=True, price=500), seller_a)
    assert listing.is_donation is True
    assert listing.price == 0


def test_donation_does_not_need_a_price(lifecycle, seller_a):
    listing = lifecycle.create(listing_payload(is_donation=True, price=None), seller_a)
    assert listing.price == 0


@pytest.mark.parametrize("overrides, code", [
    ({"title": None}, "title_too_short"),
    ({"description": "too short"}, "description_too_short"),
    ({"seller_phone": ""}, "seller_phone_required"),
    ({"category": None}, "category_required"),
    ({"location": "   "}, "location_required"),
    ({"images": []}, "images_required"),
    ({"price": -1}, "price_invalid"),
    ({"price": None}, "price_invalid"),
    ({"price": "cheap"}, "price_invalid"),
    ({"images": ["file:///tmp/x.png", "ftp://host/y.jpg"]}, "no_valid_images"),
])
def test_validation_codes(overrides, code):
    with pytest.raises(ValidationError) as exc:
        validate_listing_fields(listing_payload(**overrides))
    assert _code(exc) == code


def test_first_failing_check_wins():
    payload = listing_payload(title="x", description="short", seller_phone="", images=[])
    with pytest.raises(ValidationError) as exc:
        validate_listing_fields(payload)
    assert _code(exc) == "title_too_short"

    payload["title"] = "Valid title"
    with pytest.raises(ValidationError) as exc:
        validate_listing_fields(payload)
    assert _code(exc) == "description_too_short"


def test_price_zero_is_allowed_for_sales():
    assert validate_listing_fields(listing_payload(price=0))["price"] == 0


def test_invalid_images_are_dropped(lifecycle, seller_a):
    listing = lifecycle.create(listing_payload(images=[
        "not-an-image",
        "data:image/png;base64,iVBORw0KGgo=",
        "http://img.example.com/a.jpg",
    ]), seller_a)
    assert listing.images == ["data:image/png;base64,iVBORw0KGgo=", "http://img.example.com/a.jpg"]


def test_create_requires_identity(lifecycle):
    with pytest.raises(UnauthorizedError):
        lifecycle.create(listing_payload(), ANONYMOUS)


def test_create_updates_owner_record(lifecycle, user_store, seller_b):
    user_store.upsert(make_user("user_b", role="user"))
    lifecycle.create(listing_payload(), seller_b)

    user = user_store.get("user_b")
    assert user.total_listings == 1
    assert user.role == "seller"


def test_create_without_user_record_still_succeeds(lifecycle, user_store, seller_a):
    listing = lifecycle.create(listing_payload(), seller_a)
    assert listing.id
    assert user_store.get("user_a") is None


def test_create_publishes_event(lifecycle, events, seller_a):
    seen = []
    events.subscribe(LISTING_CREATED, seen.append)
    listing = lifecycle.create(listing_payload(), seller_a)
    assert [e.subject_id for e in seen] == [listing.id]
    assert seen[0].actor_id == "user_a"


# -- mark sold ------------------------------------------------------------

def test_mark_sold_by_owner(lifecycle, seller_a, clock):
    listing = lifecycle.create(listing_payload(), seller_a)
    clock.advance(days=2)

    sold = lifecycle.mark_sold(listing.id, seller_a)
    assert sold.status == "sold"
    assert sold.sold_at == clock.now
    assert sold.sold_at >= sold.created_at


def test_mark_sold_forbidden_for_non_owner(lifecycle, seller_a, seller_b, admin):
    listing = lifecycle.create(listing_payload(), seller_a)
    with pytest.raises(ForbiddenError):
        lifecycle.mark_sold(listing.id, seller_b)
    with pytest.raises(ForbiddenError):
        lifecycle.mark_sold(listing.id, admin)


def test_mark_sold_unknown_listing(lifecycle, seller_a):
    with pytest.raises(NotFoundError):
        lifecycle.mark_sold("missing", seller_a)


def test_mark_sold_twice_keeps_first_sold_at(lifecycle, seller_a, clock, listing_store):
    listing = lifecycle.create(listing_payload(), seller_a)
    first = lifecycle.mark_sold(listing.id, seller_a).sold_at
    clock.advance(days=3)

    again = lifecycle.mark_sold(listing.id, seller_a)
    assert again.sold_at == first
    assert listing_store.get(listing.id).sold_at == first


def test_mark_sold_rejects_inactive(lifecycle, seller_a, admin):
    listing = lifecycle.create(listing_payload(), seller_a)
    lifecycle.update(listing.id, {"status": "inactive"}, admin)
    with pytest.raises(ValidationError) as exc:
        lifecycle.mark_sold(listing.id, seller_a)
    assert _code(exc) == "invalid_status_transition"


def test_mark_sold_invalidates_analytics_cache(lifecycle, cache, events, seller_a):
    listing = lifecycle.create(listing_payload(), seller_a)
    cache.set(seller_cache_key("user_a"), {"stale": True})
    cache.set(PLATFORM_CACHE_KEY, {"stale": True})
    sold_events = []
    events.subscribe(LISTING_SOLD, sold_events.append)

    lifecycle.mark_sold(listing.id, seller_a)

    assert cache.get(seller_cache_key("user_a")) is MISS
    assert cache.get(PLATFORM_CACHE_KEY) is MISS
    assert sold_events[0].payload["price"] == 4500


# -- delete ---------------------------------------------------------------

def test_delete_by_owner(lifecycle, listing_store, user_store, seller_a, events):
    user_store.upsert(make_user("user_a", role="seller"))
    listing = lifecycle.create(listing_payload(), seller_a)
    deleted = []
    events.subscribe(LISTING_DELETED, deleted.append)

    lifecycle.delete(listing.id, seller_a)

    assert listing_store.get(listing.id) is None
    assert user_store.get("user_a").total_listings == 0
    assert len(deleted) == 1


def test_delete_forbidden_and_not_found(lifecycle, seller_a, seller_b):
    listing = lifecycle.create(listing_payload(), seller_a)
    with pytest.raises(ForbiddenError):
        lifecycle.delete(listing.id, seller_b)
    with pytest.raises(NotFoundError):
        lifecycle.delete("missing", seller_b)


def test_delete_requires_identity(lifecycle, seller_a):
    listing = lifecycle.create(listing_payload(), seller_a)
    with pytest.raises(UnauthorizedError):
        lifecycle.delete(listing.id, ANONYMOUS)


# -- admin update ---------------------------------------------------------

def test_update_by_admin(lifecycle, seller_a, admin):
    listing = lifecycle.create(listing_payload(), seller_a)
    updated = lifecycle.update(listing.id, {"title": "Teak coffee table", "price": 3000}, admin)
    assert updated.title == "Teak coffee table"
    assert updated.price == 3000
    assert updated.owner_id == "user_a"


def test_update_by_owner_is_forbidden(lifecycle, seller_a):
    listing = lifecycle.create(listing_payload(), seller_a)
    with pytest.raises(ForbiddenError):
        lifecycle.update(listing.id, {"title": "Mine anyway"}, seller_a)


def test_update_revalidates(lifecycle, seller_a, admin):
    listing = lifecycle.create(listing_payload(), seller_a)
    with pytest.raises(ValidationError) as exc:
        lifecycle.update(listing.id, {"images": []}, admin)
    assert _code(exc) == "images_required"
    with pytest.raises(ValidationError) as exc:
        lifecycle.update(listing.id, {"status": "archived"}, admin)
    assert _code(exc) == "invalid_status"
    with pytest.raises(ValidationError) as exc:
        lifecycle.update(listing.id, {"owner_id": "user_b"}, admin)
    assert _code(exc) == "immutable_field"


def test_update_to_donation_zeroes_price(lifecycle, seller_a, admin):
    listing = lifecycle.create(listing_payload(), seller_a)
    updated = lifecycle.update(listing.id, {"is_donation": True}, admin)
    assert updated.price == 0


def test_update_status_keeps_sold_at_consistent(lifecycle, seller_a, admin):
    listing = lifecycle.create(listing_payload(), seller_a)
    sold = lifecycle.update(listing.id, {"status": "sold"}, admin)
    assert sold.sold_at is not None
    reopened = lifecycle.update(listing.id, {"status": "active"}, admin)
    assert reopened.sold_at is None


def test_update_unknown_listing(lifecycle, admin):
    with pytest.raises(NotFoundError):
        lifecycle.update("missing", {"title": "Whatever"}, admin)


# -- views ----------------------------------------------------------------

def test_sequential_views_add_exactly_n(lifecycle, seller_a, listing_store):
    listing = lifecycle.create(listing_payload(), seller_a)
    for _ in range(7):
        lifecycle.increment_view(listing.id)
    assert listing_store.get(listing.id).views == 7


def test_increment_view_returns_new_count(lifecycle, seller_a):
    listing = lifecycle.create(listing_payload(), seller_a)
    assert lifecycle.increment_view(listing.id) == 1
    assert lifecycle.increment_view(listing.id) == 2


def test_increment_view_unknown_listing(lifecycle):
    with pytest.raises(NotFoundError):
        lifecycle.increment_view("missing")


def test_concurrent_views_are_not_lost(lifecycle, seller_a, listing_store):
    listing = lifecycle.create(listing_payload(), seller_a)
    per_thread, threads = 20, 4

    def worker():
        for _ in range(per_thread):
            lifecycle.increment_view(listing.id)

    pool = [threading.Thread(target=worker) for _ in range(threads)]
    for t in pool:
        t.start()
    for t in pool:
        t.join()

    assert listing_store.get(listing.id).views == per_thread * threads


def test_view_counts_for_visitors_only(lifecycle, seller_a, seller_b):
    listing = lifecycle.create(listing_payload(), seller_a)
    assert lifecycle.view(listing.id, seller_a).views == 0
    assert lifecycle.view(listing.id, seller_b).views == 1
    assert lifecycle.view(listing.id, ANONYMOUS).views == 2
    assert lifecycle.view(listing.id, ANONYMOUS, count_view=False).views == 2


def test_view_survives_failed_increment(lifecycle, seller_a, monkeypatch):
    from .errors import ServerFault

    listing = lifecycle.create(listing_payload(), seller_a)

    def broken(listing_id):
        raise ServerFault("Database error")

    monkeypatch.setattr(lifecycle.listings, "increment_views", broken)
    fetched = lifecycle.view(listing.id, ANONYMOUS)
    assert fetched.id == listing.id
    assert fetched.views == 0
