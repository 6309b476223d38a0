"""
Shared database engine, session factory, and declarative base.
Imported by models and route modules to avoid circular dependencies.

NOTE: load_dotenv() must be called BEFORE this module is imported
(done in main.py at startup).
"""

import logging
import os

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./pulse.db")


def make_engine(url: str):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def init_db(bind=None):
    """Creates every table once at startup."""
    # Register the models on Base.metadata
    from pulse import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database schema ready")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
