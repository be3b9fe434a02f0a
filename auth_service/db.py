"""Database connection for the user store, using SQLAlchemy."""

import logging
from fastapi import HTTPException
from sqlalchemy import create_engine, exc
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from common.config import get_settings

logger = logging.getLogger(__name__)

SQLALCHEMY_DATABASE_URL = get_settings().database_url


def _engine_options(url: str) -> dict:
    # SQLite connections are shared with FastAPI's threadpool; in-memory databases need a single connection.
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    options = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        options["poolclass"] = StaticPool
    return options


# Engine: the entry point to the database.
try:
    engine = create_engine(SQLALCHEMY_DATABASE_URL, **_engine_options(SQLALCHEMY_DATABASE_URL))
    with engine.connect() as connection:
        logger.info("Database connection established.")
except exc.SQLAlchemyError as e:
    logger.error(f"Error connecting to the database: {e}", exc_info=True)
    engine = None

# One session per request.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine) if engine else None

Base = declarative_base()


# --- FastAPI dependency ---
def get_db():
    """
    Yields a database session for the request and always closes it afterwards.
    Database errors roll the session back and surface as a 500.
    """
    if SessionLocal is None:
        logger.error("Database session factory is not initialized.")
        raise HTTPException(status_code=503, detail="Database service unavailable.")

    db = SessionLocal()
    try:
        yield db
    except exc.SQLAlchemyError as e:
        logger.error(f"Database error during request: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal database error.")
    finally:
        db.close()
