"""Database connection and session management."""

from collections.abc import Generator
from typing import Annotated

from fastapi import Depends
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from college_portal.core.config import settings


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


def configure_sqlite_transactions(sqlite_engine: Engine) -> None:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINTs nest correctly on pysqlite."""

    @event.listens_for(sqlite_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def _engine_options() -> dict:
    if settings.is_sqlite:
        return {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    return {
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 20,
    }


# echo=False; import progress is logged by the service loggers instead
engine = create_engine(
    settings.DATABASE_URL,
    echo=False,
    **_engine_options(),
)
if settings.is_sqlite:
    configure_sqlite_transactions(engine)

SessionLocal = sessionmaker(
    bind=engine,
    class_=Session,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


def get_db() -> Generator[Session, None, None]:
    """Get database session dependency."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# Type alias for dependency injection
DbSession = Annotated[Session, Depends(get_db)]
