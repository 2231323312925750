"""Engine, session factory and the request-scoped session dependency."""

from collections.abc import Generator
from typing import Annotated, Any, Dict

from fastapi import Depends
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from rms.core.config import settings


def engine_options(database_url: str) -> Dict[str, Any]:
    """Keyword arguments for ``create_engine`` suited to the backend."""
    if not database_url.startswith("sqlite"):
        return {
            "pool_size": settings.db_pool_size,
            "max_overflow": settings.db_max_overflow,
            "pool_pre_ping": True,
            "pool_recycle": 3600,
        }

    options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if ":memory:" in database_url:
        # One shared connection, or every checkout sees an empty database
        options["poolclass"] = StaticPool
    else:
        options.update(pool_pre_ping=True, pool_recycle=1800)
    return options


def build_engine(database_url: str) -> Engine:
    built = create_engine(database_url, echo=settings.db_echo, **engine_options(database_url))
    if database_url.startswith("sqlite"):
        # Order -> ticket -> item cascades rely on FK enforcement
        @event.listens_for(built, "connect")
        def _sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return built


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


DbSession = Annotated[Session, Depends(get_db)]
