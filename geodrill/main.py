"""
FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from geodrill.config import settings
from geodrill.middleware.error_handler import ErrorHandlerMiddleware
from geodrill.api.v1.routers import navigation, scatter

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# Rate limiter
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_requests}/minute"],
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Loads the viewer session at startup and closes the geography client
    at shutdown.
    """
    from geodrill.api.dependencies import build_viewer_session
    from geodrill.infrastructure.geo_api_client import get_geo_client

    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Log level: {settings.log_level}")
    logger.info(f"Geography API: {settings.geo_api_base_url}, "
                f"membership cache={settings.cache_region_membership}")
    logger.info(f"Rate limit: {settings.rate_limit_requests} requests/minute")

    try:
        session = build_viewer_session()
        await session.start()
    except Exception as e:
        # the API stays up and answers 503 until restarted with valid data
        logger.exception(f"Viewer session failed to start: {str(e)}")

    yield

    # Shutdown
    logger.info("Shutting down application...")
    client = get_geo_client()
    await client.close()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    Drill-down viewer of French land parcels

    The map shows regions, departments and communes coloured by the
    surface-weighted mean altitude or slope of their parcels, under a
    land-cover filter. A companion scatter view plots the same areas by
    altitude and slope and goes down to individual parcels.

    ## Features

    - **Drill-down navigation**: region -> department -> commune, with back
    - **Land-cover filter**: re-aggregates the level currently displayed
    - **Stale result discard**: a late fetch for a superseded selection is
      never displayed
    - **Search and jump**: reach any region, department or commune by name
    - **Render effects**: every command returns the effects a renderer applies
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# Add CORS middleware with configurable origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add global error handling middleware
app.add_middleware(ErrorHandlerMiddleware)

# Include routers
app.include_router(navigation.router, prefix="/api/v1")
app.include_router(scatter.router, prefix="/api/v1")


@app.get("/", tags=["health"])
async def root():
    """
    Root endpoint for health check.

    Returns:
        Status message
    """
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
    }


@app.get("/health", tags=["health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        Health status, session readiness and the loaded geography sizes
    """
    from geodrill.api.dependencies import _viewer_session

    ready = bool(_viewer_session and _viewer_session.started)
    body = {
        "status": "healthy",
        "service": settings.app_name,
        "session_ready": ready,
    }
    if ready:
        body["regions"] = len(_viewer_session.registry.regions)
        body["departments"] = len(_viewer_session.registry.departments)
        body["land_cover_types"] = len(_viewer_session.filter_state.universe)
    return body
