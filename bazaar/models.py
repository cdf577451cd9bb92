"""
Pydantic models for API request/response serialization.
"""
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict

from .records import Listing, User, ROLE_ADMIN
from .utils import whatsapp_link


class ListingOut(BaseModel):
    """Output model for listing data."""
    id: str
    owner_id: str
    title: str
    description: str = ""
    category: str
    condition: str = "good"
    location: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    price: float = 0
    is_donation: bool = False
    country_code: str = "+254"
    seller_phone: str
    images: List[str]
    status: str
    views: Optional[int] = None
    sold_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    contact_url: Optional[str] = None

    @classmethod
    def from_record(cls, listing: Listing, show_views: bool = True) -> "ListingOut":
        return cls(
            id=listing.id,
            owner_id=listing.owner_id,
            title=listing.title,
            description=listing.description,
            category=listing.category,
            condition=listing.condition,
            location=listing.location,
            latitude=listing.latitude,
            longitude=listing.longitude,
            price=listing.price,
            is_donation=listing.is_donation,
            country_code=listing.country_code,
            seller_phone=listing.seller_phone,
            images=listing.images,
            status=listing.status,
            views=listing.views if show_views else None,
            sold_at=listing.sold_at,
            created_at=listing.created_at,
            updated_at=listing.updated_at,
            contact_url=whatsapp_link(listing.seller_phone, listing.country_code, listing.title),
        )


class ListingsResponse(BaseModel):
    """Response model for paginated listings."""
    total: int
    items: List[ListingOut]


class SellerInfo(BaseModel):
    user_id: str
    name: Optional[str] = None
    email: Optional[str] = None


class AdminListingOut(ListingOut):
    seller_info: SellerInfo


class AdminListingsResponse(BaseModel):
    success: bool = True
    total: int
    listings: List[AdminListingOut]


class ListingCreate(BaseModel):
    """
    Listing submission. Fields are optional at this layer so the ordered
    checks in ``validate_listing_fields`` decide which error the caller sees.
    """
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Any] = None
    is_donation: bool = False
    seller_phone: Optional[str] = None
    country_code: Optional[str] = None
    category: Optional[str] = None
    location: Optional[str] = None
    condition: Optional[str] = None
    images: Optional[List[Any]] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class ListingPatch(BaseModel):
    """Admin edit of a listing; only the fields sent are changed."""
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Any] = None
    is_donation: Optional[bool] = None
    seller_phone: Optional[str] = None
    country_code: Optional[str] = None
    category: Optional[str] = None
    location: Optional[str] = None
    condition: Optional[str] = None
    images: Optional[List[Any]] = None
    status: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class MessageOut(BaseModel):
    success: bool = True
    message: str


class ViewCountOut(BaseModel):
    success: bool = True
    views: int


class CategoriesOut(BaseModel):
    categories: List[str]
    popular: List[str]


class SellerAnalyticsOut(BaseModel):
    """Totals over one seller's listings."""
    total_listings: int
    active_listings: int
    sold_items: int
    total_revenue: float
    views: int
    average_price: int
    donation_count: int
    approximate: bool = False


class OverviewOut(BaseModel):
    total_listings: int
    active_listings: int
    sold_items: int
    total_revenue: float
    total_views: int
    average_price: int
    donation_count: int


class UserStatsOut(BaseModel):
    total_users: int
    users: int
    sellers: int
    admins: int
    new_users_last_30_days: int
    active_sellers: int


class PerformanceOut(BaseModel):
    conversion_rate: float
    avg_views_per_listing: int
    avg_revenue_per_sale: float


class CategoryCount(BaseModel):
    category: str
    count: int


class CategoryStatsOut(BaseModel):
    top_categories: List[CategoryCount]
    total_categories: int


class MonthOut(BaseModel):
    month: str
    year: int
    listings: int
    sold: int
    revenue: float


class PlatformAnalyticsOut(BaseModel):
    """Platform-wide figures for the admin dashboard."""
    overview: OverviewOut
    user_stats: UserStatsOut
    performance: PerformanceOut
    category_stats: CategoryStatsOut
    monthly_growth: List[MonthOut]
    approximate: bool = False


class UserOut(BaseModel):
    id: str
    email: str = ""
    name: str = ""
    avatar: str = ""
    bio: str = ""
    role: str
    is_admin: bool
    is_active: bool = True
    total_listings: int = 0
    joined_date: Optional[datetime] = None
    last_login: Optional[datetime] = None

    @classmethod
    def from_record(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            avatar=user.avatar,
            bio=user.bio,
            role=user.role,
            is_admin=user.role == ROLE_ADMIN,
            is_active=user.is_active,
            total_listings=user.total_listings,
            joined_date=user.created_at,
            last_login=user.last_login,
        )


class UserResponse(BaseModel):
    success: bool = True
    user: UserOut


class UsersResponse(BaseModel):
    success: bool = True
    users: List[UserOut]


class UserSync(BaseModel):
    """Profile attributes the client forwards from the identity provider."""
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    image_url: Optional[str] = None
    bio: Optional[str] = None


class RoleUpdate(BaseModel):
    role: str
