"""TokenGate FastAPI application — entry point for the API server.

Run with ``uvicorn tokengate.api.main:create_app --factory``.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI

from tokengate.core.logging import get_logger, setup_logging
from tokengate.services import GovernanceServices

log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup/shutdown lifecycle — build services, start the sweep, close on exit."""
    log.info("api_starting")
    services = getattr(app.state, "services", None)
    if services is None:
        services = await GovernanceServices.from_settings()
        app.state.services = services
    await services.start()
    yield
    await services.stop()
    log.info("api_shutdown")


def create_app(services: GovernanceServices | None = None) -> FastAPI:
    """Build and return the FastAPI application.

    ``services`` lets tests or embedding hosts supply a pre-built container.
    """
    setup_logging()

    app = FastAPI(
        title="TokenGate API",
        description="Token balances, monthly budgets, and rate limits",
        version="0.1.0",
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services

    from tokengate.api.routes.billing import router as billing_router
    from tokengate.api.routes.health import router as health_router

    app.include_router(health_router, prefix="/api")
    app.include_router(billing_router, prefix="/api")

    return app
