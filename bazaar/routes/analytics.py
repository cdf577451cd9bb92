"""
Analytics API route handlers.
"""
import logging

from fastapi import APIRouter, Depends

from ..analytics import AnalyticsService
from ..dependencies import get_analytics, require_actor
from ..models import PlatformAnalyticsOut, SellerAnalyticsOut
from ..policy import Actor

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/analytics", tags=["analytics"])


@router.get("/seller/{seller_id}", response_model=SellerAnalyticsOut)
async def get_api_seller_analytics(
    seller_id: str,
    actor: Actor = Depends(require_actor),
    analytics: AnalyticsService = Depends(get_analytics),
):
    """Sales, views and pricing totals for the caller's own listings."""
    return SellerAnalyticsOut(**analytics.seller_analytics(seller_id, actor))


@router.get("/platform", response_model=PlatformAnalyticsOut)
async def get_api_platform_analytics(
    actor: Actor = Depends(require_actor),
    analytics: AnalyticsService = Depends(get_analytics),
):
    """Platform-wide figures, admin only."""
    return PlatformAnalyticsOut(**analytics.platform_analytics(actor))
