"""Database session management."""

from collections.abc import Generator
from typing import Annotated

from fastapi import Depends
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine, handling SQLite specially for check_same_thread."""
    connect_args = {}
    pool_config = {}

    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        pool_config = {
            "pool_pre_ping": True,
            "pool_recycle": 1800,  # Recycle connections every 30 minutes
        }
    else:
        pool_config = {
            "pool_size": 10,
            "max_overflow": 20,
            "pool_pre_ping": True,
            "pool_recycle": 3600,
        }

    new_engine = create_engine(
        database_url,
        connect_args=connect_args,
        echo=echo,
        **pool_config,
    )

    # Enable foreign key enforcement for SQLite
    if database_url.startswith("sqlite"):
        @event.listens_for(new_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


engine = build_engine(settings.database_url, echo=settings.sql_echo)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Get database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Type alias for dependency injection
DbSession = Annotated[Session, Depends(get_db)]
