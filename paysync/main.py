from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from paysync import __version__
from paysync.core.config import get_settings
from paysync.core.context import build_context
from paysync.core.logging import configure_logging, request_id_middleware
from paysync.transactions.router import router as transactions_router

logger = logging.getLogger(__name__)

settings = get_settings()
configure_logging(settings.ENV, settings.DEBUG)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events."""
    # Startup
    logger.info(f"Starting paysync {__version__} (env: {settings.ENV})")

    context = getattr(app.state, "context", None)
    if context is None:
        # A missing or malformed price list aborts startup
        context = build_context(settings)
        app.state.context = context

    if context.settings.AUTO_START_FETCHER and context.clients:
        await context.fetcher.start()
    elif not context.clients:
        logger.warning("No payment providers configured, background fetcher not started")

    logger.info("paysync startup complete")

    yield

    # Shutdown
    logger.info("Shutting down paysync...")
    await context.aclose()
    logger.info("paysync shutdown complete")


app = FastAPI(title="paysync", version=__version__, lifespan=lifespan)
app.middleware("http")(request_id_middleware)
app.include_router(transactions_router)


@app.get("/")
def health_check():
    logger.debug("Health check endpoint called")
    return {"status": "ok"}


@app.get("/healthz")
def healthz():
    logger.debug(f"Healthz endpoint called (env: {settings.ENV})")
    return {"status": "healthy", "env": settings.ENV}
