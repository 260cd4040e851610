"""
Academy Dashboard API

Builds the FastAPI application around one injected CacheSystem and one
RecordSource:
- /api/dashboard: stats, trends and leaderboards per academy
- /api/cache: statistics, health and manual invalidation
"""

import logging
import sys
from typing import Optional

from fastapi import FastAPI

from api.cache import router as cache_router
from api.dashboard import router as dashboard_router
from src import __version__
from src.analytics.aggregation import get_timezone
from src.analytics.service import DashboardService, RecordSource
from src.cache.system import CacheSystem, build_cache_system
from src.utils.config import Settings, get_settings


logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO"):
    """Log to stdout with the house format."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )

    # Quiet down chatty loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def create_app(
    source: RecordSource,
    system: Optional[CacheSystem] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Create the application.

    Args:
        source: Origin of raw academy records
        system: Cache system (built from the environment if omitted)
        settings: Application settings (read from the environment if omitted)
    """
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    system = system or build_cache_system()

    app = FastAPI(
        title="Academy Dashboard API",
        description="Cached dashboard statistics and leaderboards for academies",
        version=__version__,
    )
    app.state.cache_system = system
    app.state.dashboard_service = DashboardService(
        system,
        source,
        tz=get_timezone(settings.ACADEMY_TIMEZONE),
    )

    app.include_router(dashboard_router)
    app.include_router(cache_router)

    @app.get("/")
    async def root():
        """Liveness check."""
        return {"status": "ok", "service": "Academy Dashboard API"}

    logger.info(f"Academy Dashboard API created (environment={settings.ENVIRONMENT})")
    return app
