"""FastAPI application factory.

## Usage

```python
from cycle_wellness.api import create_app

app = create_app()
```

Or from the command line: `cycle-wellness serve`.

## Configuration

The app is configured via environment variables. See `cycle_wellness.config`
for available settings.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cycle_wellness.config import get_settings
from cycle_wellness.database.connection import close_db, init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the database engine on startup and dispose of it on shutdown."""
    settings = get_settings()

    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    await init_db()

    yield

    logger.info("Shutting down")
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Cycle-aware energy forecasts and calendar advice",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
        allow_headers=["*"],
    )

    from cycle_wellness.api.routes import (
        ai,
        auth,
        calendars,
        cron,
        energy,
        notifications,
        profile,
        webhooks,
        wellness,
    )

    app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
    app.include_router(profile.router, prefix="/api/profile", tags=["Profile"])
    app.include_router(energy.router, prefix="/api/energy", tags=["Energy"])
    app.include_router(wellness.router, prefix="/api/wellness", tags=["Wellness"])
    app.include_router(calendars.router, prefix="/api/calendars", tags=["Calendars"])
    app.include_router(ai.router, prefix="/api/ai", tags=["AI"])
    app.include_router(
        notifications.router, prefix="/api/notifications", tags=["Notifications"]
    )
    app.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
    app.include_router(cron.router, prefix="/cron", tags=["Cron"])

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": settings.app_version}

    return app
