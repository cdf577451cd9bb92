"""
API route handlers for listings endpoints.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..config import config
from ..database import ListingStore
from ..dependencies import get_actor, get_lifecycle, get_listing_store, require_actor
from ..errors import ValidationError
from ..lifecycle import ListingLifecycle
from ..models import (
    CategoriesOut, ListingCreate, ListingOut, ListingPatch, ListingsResponse, MessageOut, ViewCountOut,
)
from ..policy import Actor
from ..records import CATEGORIES, LISTING_STATUSES, POPULAR_CATEGORIES, Listing, ListingQuery

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["listings"])


def can_see_views(listing: Listing, actor: Actor) -> bool:
    return actor.is_admin or (actor.is_authenticated and actor.identity == listing.owner_id)


def to_out(listing: Listing, actor: Actor) -> ListingOut:
    return ListingOut.from_record(listing, show_views=can_see_views(listing, actor))


def get_listing_filters(
    owner_id: Optional[str] = None,
    status: Optional[str] = None,
    category: Optional[str] = None,
    q: Optional[str] = None,
    location: Optional[str] = None,
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lon: Optional[float] = Query(None, ge=-180, le=180),
    radius_km: Optional[float] = Query(None, gt=0),
) -> dict:
    """Dependency to extract and validate listing filters."""
    if status and status not in LISTING_STATUSES:
        raise ValidationError(f"Unknown status filter: {status}", code="invalid_status")
    return {
        "owner_id": owner_id,
        "status": status,
        "category": category,
        "q": q,
        "location": location,
        "lat": lat,
        "lon": lon,
        "radius_km": radius_km,
    }


@router.get("/listings", response_model=ListingsResponse)
async def get_api_listings(
    filters: dict = Depends(get_listing_filters),
    sort: str = "created_desc",
    limit: int = Query(config.DEFAULT_API_LIMIT, ge=1, le=config.MAX_API_LIMIT),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_actor),
    store: ListingStore = Depends(get_listing_store),
):
    """Get listings with filtering, sorting and pagination."""
    query = ListingQuery(**filters, sort=sort, limit=limit, offset=offset)
    total = store.count(query)
    items = store.find(query)
    return ListingsResponse(total=total, items=[to_out(l, actor) for l in items])


@router.get("/listings/{listing_id}", response_model=ListingOut)
async def get_api_listing(
    listing_id: str,
    actor: Actor = Depends(get_actor),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
):
    """Get a specific listing by ID, counting the view."""
    listing = lifecycle.view(listing_id, actor, count_view=config.COUNT_VIEWS_ON_READ)
    return to_out(listing, actor)


@router.post("/listings", response_model=ListingOut, status_code=201)
async def create_api_listing(
    payload: ListingCreate,
    actor: Actor = Depends(require_actor),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
):
    listing = lifecycle.create(payload.model_dump(), actor)
    return to_out(listing, actor)


@router.patch("/listings/{listing_id}/sold", response_model=ListingOut)
async def mark_api_listing_sold(
    listing_id: str,
    actor: Actor = Depends(require_actor),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
):
    listing = lifecycle.mark_sold(listing_id, actor)
    return to_out(listing, actor)


@router.delete("/listings/{listing_id}", response_model=MessageOut)
async def delete_api_listing(
    listing_id: str,
    actor: Actor = Depends(require_actor),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
):
    lifecycle.delete(listing_id, actor)
    return MessageOut(message="Listing deleted successfully")


@router.patch("/listings/{listing_id}", response_model=ListingOut)
async def update_api_listing(
    listing_id: str,
    patch: ListingPatch,
    actor: Actor = Depends(require_actor),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
):
    """Admin edit of any listing field except identity, owner and counters."""
    listing = lifecycle.update(listing_id, patch.model_dump(exclude_unset=True), actor)
    return to_out(listing, actor)


@router.post("/listings/{listing_id}/views", response_model=ViewCountOut)
async def increment_api_listing_views(
    listing_id: str,
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
):
    return ViewCountOut(views=lifecycle.increment_view(listing_id))


@router.get("/categories", response_model=CategoriesOut)
async def get_api_categories():
    return CategoriesOut(categories=CATEGORIES, popular=POPULAR_CATEGORIES)
