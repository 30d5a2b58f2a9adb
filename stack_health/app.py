"""PHP API Stack health service — FastAPI application factory."""

from __future__ import annotations

from fastapi import FastAPI

from stack_health import __version__
from stack_health.config import Settings, get_settings
from stack_health.middleware import configure_cors, lifespan, logging_middleware
from stack_health.routers import demo, health


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Health checks and demo landing page for the PHP API Stack image",
        version=__version__,
        lifespan=lifespan,
    )

    # Store settings on app state
    app.state.settings = settings

    # Middleware
    configure_cors(app, settings)
    app.middleware("http")(logging_middleware)

    # Routers
    app.include_router(health.router)
    app.include_router(demo.router)

    return app


# Default app instance for uvicorn
app = create_app()
