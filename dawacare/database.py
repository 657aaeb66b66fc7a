"""
Database connection and session management
"""
from datetime import datetime, timezone

from sqlalchemy import create_engine, pool
from sqlalchemy.orm import declarative_base, sessionmaker
from dawacare.config import settings


def utcnow() -> datetime:
    """Timezone-aware UTC now; used for created_at/updated_at so the sync cursor compares the same on every backend."""
    return datetime.now(timezone.utc)


def make_engine(url: str, echo: bool = False):
    """
    Create an engine for the cloud store (PostgreSQL) or a SQLite file/memory database.
    The desktop client uses this for its local copy.
    """
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # One shared in-memory database across threads (tests, TestClient)
            kwargs["poolclass"] = pool.StaticPool
        return create_engine(url, echo=echo, **kwargs)
    return create_engine(
        url,
        poolclass=pool.QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Verify connections before using
        pool_recycle=3600,  # Recycle connections after 1 hour
        connect_args={
            "connect_timeout": 10,
            "options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}",
        },
        echo=echo,
    )


engine = make_engine(settings.database_connection_string, echo=settings.DEBUG)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()


def get_db():
    """
    Dependency for FastAPI to get database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
