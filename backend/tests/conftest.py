"""
Shared fixtures: an in-memory SQLite database, seeded parties and an HTTP client.
"""
import os

# Must be set before rozgaar.lib.settings is imported
os.environ["DATABASE_URL"] = "sqlite://"

from datetime import date, time, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

import rozgaar.models  # noqa: F401
from rozgaar.api.app import app
from rozgaar.api.dependencies import get_db
from rozgaar.lib.db import SessionLocal, drop_db, init_db
from rozgaar.lib.jwt import create_access_token
from rozgaar.lib.settings import settings
from rozgaar.models.bookings import Booking, BookingStatus
from rozgaar.models.services import Service, ServiceCategory
from rozgaar.models.users import User, UserRole


@pytest.fixture
def db_session():
    """Fresh schema per test."""
    init_db()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        drop_db()


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    """No backoff sleeps in tests."""
    monkeypatch.setattr(settings, "store_retry_min_wait", 0)
    monkeypatch.setattr(settings, "store_retry_max_wait", 0)


def _user(session, role, name, email, location=None, skills=None):
    user = User(
        email=email,
        full_name=name,
        role=role,
        location=location,
        skills=skills or [],
    )
    session.add(user)
    session.commit()
    return user


@pytest.fixture
def customer(db_session):
    return _user(db_session, UserRole.CUSTOMER, "Asha Verma", "asha@example.com", location="Pune, Maharashtra")


@pytest.fixture
def worker(db_session):
    return _user(
        db_session,
        UserRole.WORKER,
        "Ravi Kumar",
        "ravi@example.com",
        location="Pune, Maharashtra",
        skills=["Plumbing", "Tiling"],
    )


@pytest.fixture
def outsider(db_session):
    return _user(db_session, UserRole.CUSTOMER, "Neha Singh", "neha@example.com")


@pytest.fixture
def service(db_session):
    category = ServiceCategory(name="Plumbing", icon="P")
    db_session.add(category)
    db_session.flush()
    service = Service(category_id=category.id, name="Pipe repair", base_price=Decimal("400.00"), active=True)
    db_session.add(service)
    db_session.commit()
    return service


@pytest.fixture
def make_booking(db_session, customer, worker, service):
    """Insert a booking directly, bypassing the service layer."""
    def _make(status=BookingStatus.PENDING, offered_price="500.00", **overrides):
        values = dict(
            customer_id=customer.id,
            worker_id=worker.id,
            service_id=service.id,
            description="Kitchen sink leaking",
            location="Pune, Maharashtra",
            preferred_date=date.today() + timedelta(days=3),
            preferred_time=time(10, 30),
            customer_phone="9876543210",
            offered_price=Decimal(offered_price),
            status=status,
        )
        values.update(overrides)
        booking = Booking(**values)
        db_session.add(booking)
        db_session.commit()
        return booking

    return _make


@pytest.fixture
def booking(make_booking):
    return make_booking()


def auth_headers(user):
    token = create_access_token(str(user.id), user.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for():
    return auth_headers


@pytest.fixture
def client(db_session):
    """Test client whose requests use fresh sessions on the test database."""
    def override_get_db():
        session = SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
