from typing import Generator
import logging

from fastapi import Depends
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session

from core.context import AppContext, get_app_context

logger = logging.getLogger(__name__)


# ============================================================
# ✅ Create SQLModel engine
# ============================================================
def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Build the process-wide engine.
    In-memory SQLite shares a single connection across threads.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        logger.warning("Using SQLite database: %s", database_url)
        return create_engine(database_url, echo=echo, **kwargs)

    # For PostgreSQL, pool_pre_ping avoids stale connections
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


# ============================================================
# ✅ Create tables (called at startup)
# ============================================================
def create_db_and_tables(engine: Engine) -> None:
    """
    Create all database tables based on SQLModel models.
    This runs automatically at app startup.
    """
    # Register table metadata before create_all
    import models.models  # noqa: F401

    try:
        SQLModel.metadata.create_all(engine)
        logger.info("All database tables created successfully.")
    except Exception as e:
        logger.error("Failed to create tables: %s", e)
        raise


def ping_database(engine: Engine) -> bool:
    """Run a trivial query; False when the database is unreachable."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning("Database ping failed: %s", e)
        return False


# ============================================================
# ✅ Dependency: FastAPI session generator
# ============================================================
def get_session(ctx: AppContext = Depends(get_app_context)) -> Generator[Session, None, None]:
    """
    Provides a SQLModel Session to FastAPI dependencies.
    Closes automatically after request completes.
    """
    with Session(ctx.engine) as session:
        yield session
