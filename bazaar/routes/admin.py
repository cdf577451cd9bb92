"""
Admin listing management and export route handlers.
"""
import logging
from typing import Optional

import pandas as pd
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from ..config import config
from ..database import ListingStore, UserStore, listing_to_row
from ..dependencies import get_listing_store, get_user_store, require_actor
from ..models import AdminListingOut, AdminListingsResponse, ListingOut, SellerInfo
from ..policy import Action, Actor, authorize
from ..records import ListingQuery

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin"])

EXPORT_COLUMNS = [
    "id", "owner_id", "title", "category", "condition", "location", "price", "is_donation",
    "status", "views", "country_code", "seller_phone", "sold_at", "created_at", "updated_at",
]


@router.get("/listings", response_model=AdminListingsResponse)
async def get_admin_listings(
    actor: Actor = Depends(require_actor),
    store: ListingStore = Depends(get_listing_store),
    users: UserStore = Depends(get_user_store),
):
    """All listings, newest first, with what is known about each seller."""
    authorize(actor, Action.ADMINISTER)
    profiles = {u.id: u for u in users.all()}
    items = []
    for listing in store.all():
        seller = profiles.get(listing.owner_id)
        items.append(AdminListingOut(
            **ListingOut.from_record(listing).model_dump(),
            seller_info=SellerInfo(
                user_id=listing.owner_id,
                name=seller.name if seller else None,
                email=seller.email if seller else None,
            ),
        ))
    return AdminListingsResponse(total=len(items), listings=items)


@router.get("/export/csv")
async def export_listings_csv(
    status: Optional[str] = None,
    category: Optional[str] = None,
    actor: Actor = Depends(require_actor),
    store: ListingStore = Depends(get_listing_store),
):
    """Export listings as CSV."""
    authorize(actor, Action.ADMINISTER)
    listings = store.find(ListingQuery(status=status, category=category, limit=config.EXPORT_LIMIT))

    if not listings:
        # Return empty CSV with headers
        df = pd.DataFrame(columns=EXPORT_COLUMNS)
    else:
        df = pd.DataFrame([listing_to_row(l) for l in listings])[EXPORT_COLUMNS]
        df["is_donation"] = df["is_donation"].astype(bool)

    csv_content = df.to_csv(index=False).encode("utf-8")
    logger.info(f"Exported {len(df)} listings for {actor.identity}")

    return StreamingResponse(
        iter([csv_content]),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="bazaar_listings.csv"'},
    )
