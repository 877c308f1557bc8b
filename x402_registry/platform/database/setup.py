"""Database setup and teardown functions.

This module provides functions for opening and closing the primary database
during the FastAPI application lifecycle. The schema itself is owned by
Alembic migrations.
"""

import logging

from fastapi import FastAPI

from x402_registry.platform.constants import SERVICE_NAME

from .engine import DbEngine

logger = logging.getLogger(__name__)


async def setup_db(app: FastAPI) -> DbEngine | None:
    """Connect the primary database when one is configured.

    Returns:
        The connected engine, or None when the service runs without a database
    """
    settings = app.state.settings
    app.state.db_engine = None
    if settings.primary_db is None:
        logger.info("No primary database configured, using in-memory storage")
        return None

    logger.info("Setting up databases...")
    db_engine = DbEngine(
        instance_name="Primary",
        app_name=SERVICE_NAME,
        pool_size=5,
    )
    await db_engine.connect(**settings.primary_db.model_dump())
    app.state.db_engine = db_engine

    logger.info("Databases setup complete")
    return db_engine


async def close_db(app: FastAPI) -> None:
    db_engine = getattr(app.state, "db_engine", None)
    if db_engine is None:
        return

    logger.info("Closing databases...")
    await db_engine.disconnect()
    app.state.db_engine = None
    logger.info("Databases closed")
