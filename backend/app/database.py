"""
Database engine, session factory and the declarative base.

PostgreSQL in production, where Alembic owns the schema. SQLite for local
development and the test suite, where tables are created from the models.
"""

import os
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import StaticPool

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./course_portal.db")

IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def _engine_kwargs(url: str) -> dict:
    if url.startswith("postgresql"):
        return {"pool_size": 10, "max_overflow": 20, "pool_pre_ping": True}
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in IN_MEMORY_URLS:
            # Each connection would otherwise get its own empty database
            kwargs["poolclass"] = StaticPool
        return kwargs
    return {}


engine = create_engine(DATABASE_URL, echo=False, **_engine_kwargs(DATABASE_URL))

if DATABASE_URL.startswith("sqlite"):
    @event.listens_for(engine, "connect")
    def enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        # Payment and quiz attempt cascades rely on ON DELETE CASCADE
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db():
    """FastAPI dependency: one session per request, closed (and rolled back if uncommitted) afterwards."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables():
    Base.metadata.create_all(bind=engine)


def drop_tables():
    """Drop every table. Only the test suite calls this."""
    Base.metadata.drop_all(bind=engine)
