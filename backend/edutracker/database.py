"""
Database connection and session management module.

Uses SQLAlchemy for ORM operations. Supports PostgreSQL (production/Docker)
and SQLite (local development fallback). The local database is the fast
cache every write lands in first; the remote store is synchronized from it.

Engines and session factories are built by the application factory and
handed to the record store, so tests can run against an in-memory database.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


def make_engine(database_url: str) -> Engine:
    """
    Create a SQLAlchemy engine configured for the database type.

    SQLite does not support pool_size, max_overflow, or pool_pre_ping.
    The in-memory SQLite URL is pinned to a single connection so every
    session sees the same database.
    """
    engine_kwargs = {"echo": False}

    if database_url.startswith("postgresql"):
        engine_kwargs.update({
            "pool_size": 10,
            "max_overflow": 20,
            "pool_pre_ping": True,
        })
    elif database_url.startswith("sqlite"):
        # SQLite needs check_same_thread=False for FastAPI (multi-threaded)
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            engine_kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **engine_kwargs)

    if database_url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    """Session factory - creates new database sessions bound to the engine."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def create_tables(engine: Engine):
    """
    Create all database tables directly.

    Importing the models package registers every table with Base.metadata.
    """
    import edutracker.models  # noqa: F401
    Base.metadata.create_all(bind=engine)
