"""Database configuration and session management."""

from typing import Generator, Optional

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config.logging import get_logger
from ..config.settings import Settings, get_settings

logger = get_logger(__name__)

# Base class for all ORM models
Base = declarative_base()

_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


def _configure_sqlite(dbapi_connection, connection_record):
    """Enable foreign keys and WAL on every new SQLite connection."""
    with dbapi_connection:
        dbapi_connection.execute("PRAGMA journal_mode=WAL")
        dbapi_connection.execute("PRAGMA foreign_keys=ON")
        dbapi_connection.execute("PRAGMA synchronous=NORMAL")


def create_engine_from_settings(settings: Optional[Settings] = None) -> Engine:
    """Create a database engine from application settings."""
    settings = settings or get_settings()
    database_url = settings.get_database_url()
    is_sqlite = database_url.startswith("sqlite")

    logger.info(
        "Creating database engine",
        url_type="sqlite" if is_sqlite else "other",
        echo_sql=settings.database_echo_sql,
    )

    engine_kwargs = {"echo": settings.database_echo_sql, "pool_pre_ping": True}

    if is_sqlite:
        engine_kwargs.update(
            {
                "connect_args": {"check_same_thread": False, "timeout": 30},
                "poolclass": StaticPool,
            }
        )
    else:
        engine_kwargs.update({"pool_size": 5, "max_overflow": 10})

    engine = create_engine(database_url, **engine_kwargs)

    if is_sqlite:
        event.listen(engine, "connect", _configure_sqlite)

    return engine


def get_engine() -> Engine:
    """Get the database engine, creating it if necessary."""
    global _engine

    if _engine is None:
        _engine = create_engine_from_settings()
        logger.info("Database engine initialized")

    return _engine


def get_session_factory() -> sessionmaker:
    """Get the session factory, creating it if necessary."""
    global _SessionLocal

    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=get_engine(),
            expire_on_commit=False,
        )
        logger.debug("Session factory created")

    return _SessionLocal


def get_session() -> Generator[Session, None, None]:
    """
    Get a database session with automatic cleanup.

    Yields:
        Session: committed on success, rolled back on error
    """
    session = get_session_factory()()

    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error("Database session rolled back", error=str(e), exc_info=True)
        raise
    finally:
        session.close()


def get_session_sync() -> Session:
    """
    Get a synchronous database session.

    Returns:
        Session: caller is responsible for closing it
    """
    return get_session_factory()()


def init_db(engine: Optional[Engine] = None) -> None:
    """Create all tables."""
    engine = engine or get_engine()
    logger.info("Creating database tables")
    Base.metadata.create_all(bind=engine)


def drop_tables(engine: Optional[Engine] = None) -> None:
    """Drop all tables."""
    engine = engine or get_engine()
    logger.warning("Dropping all database tables")
    Base.metadata.drop_all(bind=engine)


def reset_engine() -> None:
    """Dispose of the cached engine and session factory."""
    global _engine, _SessionLocal

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None
