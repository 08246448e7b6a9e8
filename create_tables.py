#!/usr/bin/env python3
"""Create the eTuition tables, including the partial unique index on applications"""

import asyncio
import logging
import sys

from sqlalchemy import text

from etuition.config import settings
from etuition.db.database import Base, engine

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def create_tables() -> bool:
    """Create database tables"""
    try:
        logger.info("Starting table creation...")
        logger.info(f"Database URL (masked): {settings.database_url.split('@')[-1]}")

        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            logger.info("Database connection successful")

        # Register models with Base.metadata
        from etuition.db import models  # noqa: F401

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            logger.info(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")

        return True
    except Exception as e:
        logger.error(f"Failed to create tables: {e}")
        return False
    finally:
        await engine.dispose()


if __name__ == "__main__":
    success = asyncio.run(create_tables())
    sys.exit(0 if success else 1)
