"""
Application lifecycle event handlers.

Startup builds the ballot cipher first so a missing or malformed key stops
the process before it accepts any request.
"""

from typing import Callable

import structlog
from fastapi import FastAPI

from core.encryption import get_ballot_cipher
from db.session import close_db, init_db

logger = structlog.get_logger(__name__)


def create_start_app_handler(app: FastAPI) -> Callable:
    """Create startup event handler."""

    async def start_app() -> None:
        logger.info("Starting SealedBallot API...")

        # Raises CipherError when BALLOT_ENCRYPTION_KEY is unusable
        get_ballot_cipher()

        await init_db()
        logger.info("Database initialized")

        logger.info("SealedBallot API started successfully")

    return start_app


def create_stop_app_handler(app: FastAPI) -> Callable:
    """Create shutdown event handler."""

    async def stop_app() -> None:
        logger.info("Shutting down SealedBallot API...")
        await close_db()
        logger.info("SealedBallot API shutdown complete")

    return stop_app
