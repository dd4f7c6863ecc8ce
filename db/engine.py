from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from db.base import Base
from db.models import Monitor, CheckResult, DomainCheck, User, Settings  # noqa: F401
import logging
import os

logger = logging.getLogger(__name__)

# Defaults to a local SQLite file; any SQLAlchemy URL works
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///data/monitors.db")
IS_SQLITE = DATABASE_URL.startswith("sqlite")


def _ensure_sqlite_dir(url: str) -> None:
    path = url.replace("sqlite:///", "", 1)
    if not url.startswith("sqlite:///") or path in ("", ":memory:"):
        return
    db_dir = os.path.dirname(path)
    if db_dir and not os.path.exists(db_dir):
        os.makedirs(db_dir, exist_ok=True)


_ensure_sqlite_dir(DATABASE_URL)

if IS_SQLITE:
    # Probe passes and scheduler jobs use sessions from more than one thread
    engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False})
else:
    engine = create_engine(DATABASE_URL, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base.metadata.create_all(engine)
logger.info(f"Tables ready: {', '.join(Base.metadata.tables.keys())}")
