"""FastAPI application factory."""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from oraclesync.api.routes import sync as sync_routes
from oraclesync.db.engine import get_engine


def create_app() -> FastAPI:
    """Build and return the FastAPI app."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Creates tables and applies migrations on first call (idempotent)
        get_engine()
        yield

    app = FastAPI(
        title="OracleSync API",
        description="Scryfall bulk card synchronization",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])

    return app


# Module-level app instance for uvicorn
app = create_app()
