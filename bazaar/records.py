"""
Data records for listings and users as the core sees them.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional


STATUS_ACTIVE = "active"
STATUS_SOLD = "sold"
STATUS_INACTIVE = "inactive"
LISTING_STATUSES = (STATUS_ACTIVE, STATUS_SOLD, STATUS_INACTIVE)

ROLE_USER = "user"
ROLE_SELLER = "seller"
ROLE_ADMIN = "admin"
USER_ROLES = (ROLE_USER, ROLE_SELLER, ROLE_ADMIN)

CATEGORIES = [
    "Electronics",
    "Furniture & Home Decor",
    "Fashion & Accessories",
    "Books & Education",
    "Sports & Outdoors",
    "Vehicles & Automotive",
    "Real Estate",
    "Jobs & Services",
    "Pets & Animals",
    "Health & Beauty",
    "Toys & Games",
    "Baby & Kids",
    "Art & Collectibles",
    "Musical Instruments",
    "Office Supplies",
    "Tools & DIY",
    "Travel & Luggage",
    "Food & Beverages",
    "Agriculture & Farming",
    "Industrial Equipment",
    "Other",
]

POPULAR_CATEGORIES = [
    "Electronics",
    "Fashion & Accessories",
    "Furniture & Home Decor",
    "Vehicles & Automotive",
    "Real Estate",
    "Jobs & Services",
]


@dataclass
class Listing:
    """A single item posting (sale or donation) owned by one user."""

    id: str
    owner_id: str
    title: str
    description: str
    category: str
    location: str
    seller_phone: str
    images: List[str]
    created_at: datetime
    updated_at: datetime

    price: float = 0.0
    is_donation: bool = False
    condition: str = "good"
    country_code: str = "+254"

    status: str = STATUS_ACTIVE
    views: int = 0
    sold_at: Optional[datetime] = None

    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def is_sold(self) -> bool:
        return self.status == STATUS_SOLD


@dataclass
class User:
    """A marketplace user as synced from the identity provider."""

    id: str
    created_at: datetime
    updated_at: datetime
    name: str = ""
    email: str = ""
    avatar: str = ""
    bio: str = ""
    role: str = ROLE_USER
    is_active: bool = True
    last_login: Optional[datetime] = None
    total_listings: int = 0


@dataclass
class ListingQuery:
    """Filters accepted by the listing store."""

    owner_id: Optional[str] = None
    status: Optional[str] = None
    category: Optional[str] = None
    q: Optional[str] = None
    location: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    radius_km: Optional[float] = None
    sort: str = "created_desc"
    limit: Optional[int] = None
    offset: int = 0

    @property
    def has_radius(self) -> bool:
        return self.lat is not None and self.lon is not None and self.radius_km is not None
