"""
Database engine, session factory and FastAPI session dependency.
"""
from fastapi import Depends
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from .config import settings


def build_engine(database_url: str):
    """Create an engine; SQLite needs cross-thread access for archive reads."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)


engine = build_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)

Base = declarative_base()


def get_session_factory() -> sessionmaker:
    """Session factory used by services that open their own sessions."""
    return SessionLocal


def get_db(session_factory: sessionmaker = Depends(get_session_factory)):
    """Yield a request-scoped database session."""
    db: Session = session_factory()
    try:
        yield db
    finally:
        db.close()
