"""
Lifespan startup and shutdown task functions.

Each function handles one resource. Startup order: logging, database schema,
default data, blob storage. Shutdown runs in reverse.
"""

import logging

logger = logging.getLogger("main")


async def initialize_logging(log_config):
    """Setup logging configuration."""
    from core.logging_config import setup_logging

    setup_logging(log_config)


async def log_cors_configuration(settings):
    """Log CORS configuration for debugging."""
    logger.info(f"🔒 CORS Allowed Origins: {settings.cors.origins}")


async def initialize_database():
    """Create missing tables."""
    from core.database import init_db

    await init_db()
    logger.info("✅ Database initialized")


async def setup_default_data():
    """Seed roles, permissions, counters and lookup rows."""
    from core.database import session_scope
    from db.setup import setup_database_default_data

    logger.info("Setting up default database data...")
    try:
        async with session_scope() as db:
            await setup_database_default_data(db)
        logger.info("✅ Default data setup completed successfully")
    except Exception as e:
        logger.error(f"❌ Error during default data setup: {e}")
        raise


async def initialize_blob_storage():
    """Connect to MinIO. The API still starts when storage is unreachable."""
    from minio.error import S3Error
    from urllib3.exceptions import MaxRetryError

    from services.blob_storage import blob_storage

    try:
        await blob_storage.initialize()
        logger.info("✅ MinIO storage initialized")
    except (S3Error, MaxRetryError, ValueError) as e:
        logger.warning(f"⚠️  MinIO initialization failed: {e}")


async def drain_email_queue():
    """Wait for background email sends to finish."""
    from services.email_service import email_service

    await email_service.drain()
    logger.info("✅ Pending emails flushed")


async def shutdown_blob_storage():
    from services.blob_storage import blob_storage

    await blob_storage.shutdown()
    logger.info("✅ MinIO client released")


async def shutdown_database():
    """Close database connections."""
    from core.database import close_db

    await close_db()
    logger.info("✅ Database connections closed")
