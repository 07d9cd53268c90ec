"""
Initialize the link store.

Run this once to create the tables and indexes:
    python -m shortlink.init_db
"""

import logging

from .config import settings
from .database import engine, Base
from . import models  # noqa: F401  registers the tables on Base.metadata


logger = logging.getLogger(__name__)


def init_database(bind=engine):
    """Create all database tables"""
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=bind)
    logger.info("Database tables created: %s", ", ".join(sorted(Base.metadata.tables)))


if __name__ == "__main__":
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    logger.info("Short link store initialization (%s)", settings.DATABASE_URL)
    init_database()
