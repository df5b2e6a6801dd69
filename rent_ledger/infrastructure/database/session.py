"""Database engine and per-request sessions for the ledger store"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from rent_ledger.config import settings


def build_engine(database_url: str) -> Engine:
    """Engine for the configured database; SQLite gets a thread-shareable connection instead of a pool"""
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_recycle=3600,  # Recycle after 1 hour to avoid stale connections
    )


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Session:
    """Dependency injection for database sessions; one edit batch commits through one session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
