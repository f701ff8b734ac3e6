"""
Bank Ledger FastAPI Application.

This is the entry point for the application.
All routers are registered here.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from bank_ledger.config import get_settings
from bank_ledger.logging_config import setup_logging
from bank_ledger.models.base import check_database
from bank_ledger.api.health import router as health_router
from bank_ledger.api.accounts import router as accounts_router
from bank_ledger.api.transactions import router as transactions_router

settings = get_settings()
setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

logger = logging.getLogger("bank_ledger.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Start even when the database is down; /health reports degraded
    # and storage calls fail with StorageFailure until it returns.
    if check_database():
        logger.info("Database connection verified")
    else:
        logger.error("Database unavailable at startup, running degraded")
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Account balances and an auditable transaction ledger",
    lifespan=lifespan,
)

# Register routers
app.include_router(health_router)
app.include_router(accounts_router)
app.include_router(transactions_router)


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    uvicorn.run(
        "bank_ledger.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_config=None,
    )
