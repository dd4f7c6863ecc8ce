"""
Shared test configuration and fixtures
"""
import pytest
import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

# Set test environment before importing app
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.pop("CRON_SECRET", None)

from main import app
from db.base import Base

# Import all models to register them with Base
from db.models import Monitor, CheckResult, DomainCheck, User, Settings  # noqa: F401


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh in-memory database and session for each test"""
    # StaticPool keeps one connection so worker threads see the same in-memory database
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestSessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def client(db_session):
    """Create a test client with overridden database"""
    from api.dependencies import get_db

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_monitor(db_session):
    """Insert a monitor (and its owner) and return it"""

    def _make(name="Example", url="https://example.com", check_interval=5, is_active=True, user=None):
        if user is None:
            user = User(email=f"{name.lower().replace(' ', '-')}@example.com")
            db_session.add(user)
            db_session.commit()
        monitor = Monitor(
            user_id=user.id,
            name=name,
            url=url,
            check_interval=check_interval,
            is_active=is_active,
        )
        db_session.add(monitor)
        db_session.commit()
        db_session.refresh(monitor)
        return monitor

    return _make
