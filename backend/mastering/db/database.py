"""Database engine & session utilities."""

# The DB helper is deliberately minimal: sync engine + classic session maker.

import logging
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from mastering.config import settings
from mastering.db.base import Base

# ---------------------------------------------------------------------------
# Engine & session factory
# ---------------------------------------------------------------------------

logger = logging.getLogger(__name__)
logger.info("Creating database engine for %s", settings.DATABASE_URL.split('@')[-1])
engine = create_engine(settings.DATABASE_URL, echo=settings.DB_ECHO, future=True)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def create_tables(bind=None) -> None:
    """Create all tables if they do not yet exist. Harmless when they do."""

    # Importing the models registers them on Base.metadata
    from mastering import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables ensured")
