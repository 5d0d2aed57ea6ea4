from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from typing import Generator
import structlog

from agent_relay.config import get_settings

logger = structlog.get_logger()
settings = get_settings()


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # a single shared connection keeps in-memory databases alive across sessions
        return {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
    return {"pool_pre_ping": True, "pool_recycle": 300, "pool_size": 20, "max_overflow": 30}


# Create database engine
engine = create_engine(settings.database_url, **_engine_options(settings.database_url))

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency function to get database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables():
    """
    Create all database tables
    """
    from agent_relay.models.database import Base
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")


def drop_tables():
    """
    Drop all database tables (use with caution!)
    """
    from agent_relay.models.database import Base
    Base.metadata.drop_all(bind=engine)
