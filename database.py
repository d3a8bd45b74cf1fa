"""Database engine and session management."""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from config import settings


# SQLAlchemy requires postgresql:// instead of postgres://
db_url = settings.DATABASE_URL
if db_url.startswith("postgres://"):
    db_url = db_url.replace("postgres://", "postgresql://", 1)

engine = create_engine(
    db_url,
    # Only use check_same_thread for SQLite
    **({"connect_args": {"check_same_thread": False}} if db_url.startswith("sqlite") else {}),
    echo=False,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


def get_db():
    """Dependency that provides a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory():
    """Dependency that provides the session factory used by the action dispatcher."""
    return SessionLocal


def init_db():
    """Create all tables."""
    import models.models  # noqa: F401  (registers the ORM tables)

    Base.metadata.create_all(bind=engine)
