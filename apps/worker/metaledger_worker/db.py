"""Ledger database access for suggestion jobs."""

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from metaledger_worker.settings import get_settings

settings = get_settings()
_url = settings.database_url_computed

if _url.startswith("sqlite"):
    engine = create_engine(_url, connect_args={"check_same_thread": False})
else:
    # One job per worker process at a time
    engine = create_engine(_url, pool_pre_ping=True, pool_size=2, max_overflow=2)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def open_session() -> Session:
    """Open a session owned by the calling task; the caller closes it."""
    return SessionLocal()
