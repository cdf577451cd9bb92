"""
Route package initialization.
"""
from .admin import router as admin_router
from .analytics import router as analytics_router
from .listings import router as listings_router
from .users import router as users_router

__all__ = ["admin_router", "analytics_router", "listings_router", "users_router"]
