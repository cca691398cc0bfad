"""Database engine, session factory and transaction helpers.

Services never create sessions on their own; they receive one through their
constructor (FastAPI injects it via get_db). The only places that open a
session themselves are background tasks and standalone audit writes, which
use get_db_session().
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from .config import get_settings

DATABASE_URL = get_settings().DATABASE_URL

_engine_kwargs = {
    "pool_pre_ping": True,  # Verify connections before using
    "echo": False,  # Set to True for SQL query logging
}

# Pool settings only apply to PostgreSQL (not SQLite)
if DATABASE_URL.startswith("sqlite"):
    _engine_kwargs["connect_args"] = {"check_same_thread": False}
    if DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
        # In-memory databases live and die with their connection
        _engine_kwargs["poolclass"] = StaticPool
else:
    _engine_kwargs["pool_size"] = 5
    _engine_kwargs["max_overflow"] = 10

engine = create_engine(DATABASE_URL, **_engine_kwargs)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """Context manager for standalone database sessions.

    Usage:
        with get_db_session() as session:
            session.query(Tenant).all()

    Automatically commits on success, rolls back on exception.
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def atomic(db: Session) -> Generator[Session, None, None]:
    """Run a unit of work on an existing session as one transaction.

    Commits when the block exits cleanly, rolls back and re-raises otherwise.
    A state mutation and its audit record written inside the same block either
    both commit or neither does.

    Usage:
        with atomic(self.db):
            document.title = "New title"
            create_audit_log(entry, session=self.db)
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def get_db() -> Generator[Session, None, None]:
    """Dependency for FastAPI endpoints.

    Usage:
        @app.get("/roles")
        def list_roles(db: Session = Depends(get_db)):
            return db.query(Role).all()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
