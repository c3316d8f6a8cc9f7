# flcseek/db.py

from .config import settings

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

# ──────────────────────────────────────────────────────────────────────────────────────────
#                  SQLAlchemy ORM setup
# ──────────────────────────────────────────────────────────────────────────────────────────

DATABASE_URL = settings.DATABASE_URL


def build_engine(url: str):
    """
    Postgres gets a sized pool; SQLite (local dev / tests) needs the
    thread check off because FastAPI runs sync routes in a worker pool.
    """
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20
    )


# Create the engine and session factory
engine       = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)

# Declarative base for all ORM models
Base = declarative_base()


def get_db():
    """
    FastAPI dependency: yields a SQLAlchemy Session and closes it after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """
    Ensure every ORM table exists.
    """
    # models must be imported so they register on Base.metadata
    from . import models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)
