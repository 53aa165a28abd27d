"""Database engine, session factory, and dependency injection."""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from typing import Generator

from taskdesk.core.config import settings


def build_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine; SQLite URLs get a thread-shareable single connection."""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo,
        )
    return create_engine(
        url,
        pool_size=20,
        max_overflow=40,
        pool_timeout=30,
        pool_recycle=1800,
        pool_pre_ping=True,
        echo=echo,
    )


engine = build_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Engine = engine) -> None:
    """Create all tables that don't exist yet."""
    import taskdesk.models  # noqa: F401  (registers mappers)
    from taskdesk.db.base import Base

    Base.metadata.create_all(bind=bind)


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency that provides a DB session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
