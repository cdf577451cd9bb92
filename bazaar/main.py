"""
Bazaar Marketplace API - main application.
"""
import logging
import os
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .cache import TTLCache
from .config import config
from .database import ListingStore, get_db_connection, init_db
from .errors import MarketplaceError, ServerFault
from .events import ALL_EVENTS, EventBus, log_event
from .records import ListingQuery, STATUS_ACTIVE
from .routes import admin_router, analytics_router, listings_router, users_router

# Configure logging
_handlers = [logging.StreamHandler(sys.stdout)]
if config.LOG_FILE:
    _handlers.append(logging.FileHandler(config.LOG_FILE))
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=_handlers
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    # Startup
    logger.info("Starting Bazaar Marketplace API...")
    try:
        config.validate()
        init_db(config.DB_PATH)
        logger.info(f"Database path: {config.DB_PATH}")
        logger.info("API startup complete")
        yield
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise
    finally:
        # Shutdown
        logger.info("Shutting down Bazaar Marketplace API...")


async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    if isinstance(exc, ServerFault):
        logger.error(f"Server fault on {request.url.path}: {exc}", exc_info=exc.__cause__ or exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = jsonable_encoder(exc.errors())
    first = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(
        status_code=400,
        content={"error": "validation_error", "code": "invalid_request", "detail": first, "errors": errors},
    )


async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    content = {"error": "server_fault", "code": "server_fault", "detail": "Internal server error"}
    if config.DEBUG:
        content["debug"] = str(exc)
    return JSONResponse(status_code=500, content=content)


def create_app() -> FastAPI:
    app = FastAPI(
        title=config.API_TITLE,
        version=config.API_VERSION,
        description=config.API_DESCRIPTION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # Per-application cache and event bus
    app.state.cache = TTLCache(config.ANALYTICS_CACHE_TTL)
    app.state.events = EventBus()
    app.state.events.subscribe(ALL_EVENTS, log_event)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=config.CORS_ALLOW_CREDENTIALS,
        allow_methods=config.CORS_ALLOW_METHODS,
        allow_headers=config.CORS_ALLOW_HEADERS,
    )

    app.add_exception_handler(MarketplaceError, marketplace_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        try:
            with get_db_connection() as conn:
                conn.execute("SELECT 1").fetchone()

            return {
                "status": "healthy",
                "version": config.API_VERSION,
                "database": "connected"
            }
        except ServerFault as e:
            logger.error(f"Health check failed: {e}")
            raise HTTPException(status_code=503, detail="Service unavailable")

    @app.get("/metrics")
    async def metrics():
        """Basic metrics endpoint."""
        store = ListingStore(config.DB_PATH)
        try:
            return {
                "total_listings": store.count(ListingQuery()),
                "active_listings": store.count(ListingQuery(status=STATUS_ACTIVE)),
                "analytics_cache": dict(app.state.cache.stats),
                "api_version": config.API_VERSION
            }
        except ServerFault as e:
            logger.error(f"Metrics endpoint failed: {e}")
            return {"error": "Unable to fetch metrics"}

    # Include routers
    app.include_router(listings_router)
    app.include_router(analytics_router)
    app.include_router(users_router)
    app.include_router(admin_router)
    return app


app = create_app()


def run() -> None:
    import uvicorn
    uvicorn.run(
        "bazaar.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_level=config.LOG_LEVEL.lower()
    )


if __name__ == "__main__":
    run()
