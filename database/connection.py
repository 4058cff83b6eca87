"""Database connection and session management."""

from pathlib import Path
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from contextlib import contextmanager

from config.settings import DATABASE_PATH
from .models import Base

# Default database path (can be overridden via SUBSERVE_DB_PATH)
DEFAULT_DB_PATH = Path(__file__).parent.parent / "data" / "subscriptions.db"


def get_database_url(db_path: str | Path | None = None) -> str:
    """Get SQLite database URL."""
    if db_path is None:
        db_path = DATABASE_PATH or DEFAULT_DB_PATH
    return f"sqlite:///{db_path}"


def create_db_engine(db_path: str | Path | None = None, echo: bool = False):
    """Create database engine.

    Args:
        db_path: Path to SQLite database file. Uses default if not provided.
        echo: If True, log all SQL statements.

    Returns:
        SQLAlchemy engine instance.
    """
    url = get_database_url(db_path)

    # Ensure directory exists
    if db_path is None:
        db_path = DATABASE_PATH or DEFAULT_DB_PATH
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    return create_engine(
        url,
        echo=echo,
        connect_args={"check_same_thread": False}  # Request handlers run in a threadpool
    )


# Global engine and session factory (initialized lazily)
_engine = None
_SessionLocal = None


def get_engine():
    """Get or create the global database engine."""
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


def get_session_factory():
    """Get or create the global session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=get_engine()
        )
    return _SessionLocal


def init_db(db_path: str | Path | None = None, echo: bool = False):
    """Initialize database: create engine and all tables.

    Args:
        db_path: Path to SQLite database file.
        echo: If True, log all SQL statements.
    """
    global _engine, _SessionLocal

    _engine = create_db_engine(db_path, echo)
    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

    # Create all tables
    Base.metadata.create_all(bind=_engine)

    return _engine


def get_db() -> Session:
    """Get a database session. Remember to close it after use."""
    SessionLocal = get_session_factory()
    return SessionLocal()


@contextmanager
def get_db_session():
    """Context manager for database sessions.

    Usage:
        with get_db_session() as db:
            client = db.query(Client).first()
    """
    db = get_db()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# For testing: in-memory database
def init_test_db():
    """Initialize an in-memory database for testing.

    StaticPool keeps one connection so every thread sees the same database.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestSession = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine
    )

    return engine, TestSession
