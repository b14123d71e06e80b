"""
Application lifespan manager.

Owns the process-wide resources: logging listener, database engine, blob
storage client and the background email tasks.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from core.config import settings
from core.logging_config import LogConfig, stop_queue_listener
from . import tasks


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    log_config = LogConfig(**settings.logging.log_config)
    await tasks.initialize_logging(log_config)

    logger = logging.getLogger("main")
    logger.info(f"🚀 Starting {settings.api.app_name}...")

    await tasks.log_cors_configuration(settings)
    await tasks.initialize_database()
    await tasks.setup_default_data()
    await tasks.initialize_blob_storage()

    yield

    logger.info(f"🛑 Shutting down {settings.api.app_name}...")

    await tasks.drain_email_queue()
    await tasks.shutdown_blob_storage()
    await tasks.shutdown_database()

    stop_queue_listener()
