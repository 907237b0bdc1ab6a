"""
FastAPI application serving stored odds.

The app owns one ScrapeContext: it is opened on startup and closed on
shutdown, and routes reach it through the `get_context` dependency.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import ConfigLoader
from ..context import ScrapeContext
from ..errors import FetchError, GameNotFoundError, PersistenceError, SportNotFoundError
from .routes import admin, odds

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the scrape context on startup and close it on shutdown."""
    ctx: ScrapeContext = app.state.ctx
    logger.info("Starting odds API server")
    await ctx.open()
    yield
    logger.info("Shutting down odds API server")
    await ctx.close()


def create_app(ctx: Optional[ScrapeContext] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        ctx: Scrape context to serve from (default: one built from settings.yaml)
    """
    app = FastAPI(
        title="Tounesbet Odds API",
        description="Prematch and live odds scraped from Tounesbet",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.ctx = ctx or ScrapeContext(ConfigLoader())

    app.include_router(odds.router, prefix="/api", tags=["odds"])
    app.include_router(admin.router, prefix="/api/admin", tags=["admin"])

    # Error handlers
    @app.exception_handler(SportNotFoundError)
    async def sport_not_found_handler(request: Request, exc: SportNotFoundError):
        return JSONResponse(status_code=404, content={"error": "sport", "sportKey": exc.sport_key})

    @app.exception_handler(GameNotFoundError)
    async def game_not_found_handler(request: Request, exc: GameNotFoundError):
        return JSONResponse(status_code=404, content={"error": "match not in DB yet", "matchId": exc.match_id})

    @app.exception_handler(FetchError)
    async def fetch_error_handler(request: Request, exc: FetchError):
        logger.warning(f"Upstream fetch failed: {exc}")
        return JSONResponse(status_code=502, content={"error": str(exc)})

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError):
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": str(exc) or "Internal server error"})

    # Health check endpoint
    @app.get("/health", tags=["health"])
    async def health_check():
        ctx: ScrapeContext = app.state.ctx
        return {"status": "healthy", "database": ctx.db.conn is not None, "source": ctx.source}

    return app
