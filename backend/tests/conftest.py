"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-at-least-32-characters-long")

import pytest
from datetime import date
from decimal import Decimal
from typing import Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tippool.core.rbac import RequestContext, UserRole
from tippool.core.security import create_access_token
from tippool.db.base import Base
from tippool.db.session import get_db
from tippool.main import app
# Import all models to ensure they're registered with Base.metadata
from tippool.models import *
from tippool.services.distribution_service import DistributionService
from tippool.services.ledger_service import LedgerService

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

COMPANY_ID = 1
OTHER_COMPANY_ID = 2
MANAGER_ID = 100
EMPLOYEE_ID = 200


def auth_headers_for(role: str, user_id: int, company_id: int = COMPANY_ID) -> dict:
    """Generate auth headers for a given role."""
    token = create_access_token({
        "sub": str(user_id),
        "company_id": company_id,
        "role": role,
    })
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Disable rate limiter during tests to avoid flaky failures
    from tippool.core.rate_limit import limiter as global_limiter
    global_limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    global_limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture
def manager_ctx() -> RequestContext:
    return RequestContext(user_id=MANAGER_ID, company_id=COMPANY_ID, role=UserRole.MANAGER)


@pytest.fixture
def employee_ctx() -> RequestContext:
    return RequestContext(user_id=EMPLOYEE_ID, company_id=COMPANY_ID, role=UserRole.EMPLOYEE)


@pytest.fixture
def other_company_ctx() -> RequestContext:
    return RequestContext(user_id=MANAGER_ID, company_id=OTHER_COMPANY_ID, role=UserRole.MANAGER)


@pytest.fixture
def manager_headers() -> dict:
    return auth_headers_for("manager", MANAGER_ID)


@pytest.fixture
def employee_headers() -> dict:
    return auth_headers_for("employee", EMPLOYEE_ID)


@pytest.fixture
def restaurant(db_session: Session, manager_ctx: RequestContext) -> dict:
    """A company with one collector department (Servers) and one receiver
    department (Support) holding Busser, Host and Runner categories.

    The receiver distribution is left empty; tests configure it.
    """
    service = DistributionService(db_session)
    floor = service.create_department(manager_ctx, "Floor", "COLLECTOR")
    support = service.create_department(manager_ctx, "Support", "RECEIVER")
    server = service.create_category(manager_ctx, floor.id, "Server")
    busser = service.create_category(manager_ctx, support.id, "Busser")
    host = service.create_category(manager_ctx, support.id, "Host")
    runner = service.create_category(manager_ctx, support.id, "Runner")
    return {
        "floor": floor,
        "support": support,
        "server": server,
        "busser": busser,
        "host": host,
        "runner": runner,
    }


@pytest.fixture
def record(db_session: Session, manager_ctx: RequestContext):
    """Record a collector tip: record(category, 'YYYY-MM-DD', amount, user_id=...)."""
    ledger = LedgerService(db_session)

    def _record(category, service_date, amount, user_id: int = EMPLOYEE_ID):
        return ledger.record_tip(
            manager_ctx,
            category_id=category.id,
            service_date=date.fromisoformat(service_date),
            gross_tips=Decimal(str(amount)),
            user_id=user_id,
        )

    return _record
