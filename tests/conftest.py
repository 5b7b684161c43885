import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("CRON_SECRET", "cron-test-secret")

from datetime import datetime, timedelta
from decimal import Decimal

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from righub.core.config import get_settings
from righub.core.database import Base, build_engine, get_db
from righub.models.user import User
from righub.services.lifecycle import ListingLifecycle


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


CONTACT = {
    "contact_name": "Dana Driller",
    "company_name": "Bore Right LLC",
    "address_line1": "12 Yard Rd",
    "city": "Tulsa",
    "state_province": "OK",
    "postal_code": "74101",
    "country": "US",
    "phone": "+1 (918) 555-0100",
    "email": "dana@boreright.com",
    "website": "https://boreright.com",
    "hear_about_us": ["search", "trade_show"],
    "accept_terms": True,
}

LISTING = {
    "asking_price": Decimal("10000"),
    "currency": "USD",
    "year": "2018",
    "manufacturer": "Vermeer",
    "model": "D24x40 S3",
    "condition": "Good",
    "serial_number": "1VR-D2440-001",
    "hours": "3200",
}


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 3, 2, 9, 0, 0))


@pytest.fixture
def lifecycle(db, settings, clock):
    return ListingLifecycle(db, settings=settings, clock=clock)


def _make_user(db, name, email):
    user = User(name=name, email=email, email_verified=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def owner(db):
    return _make_user(db, "Dana Driller", "dana@example.com")


@pytest.fixture
def other_user(db):
    return _make_user(db, "Sam Rival", "sam@example.com")


@pytest.fixture
def contact(lifecycle):
    return lifecycle.create_contact_info(dict(CONTACT))


@pytest.fixture
def make_listing(lifecycle, owner, contact):
    def _make(**overrides):
        fields = {**LISTING, **overrides}
        return lifecycle.create_listing(owner.id, contact.id, fields)

    return _make


@pytest.fixture
def published_listing(lifecycle, make_listing):
    listing = make_listing()
    lifecycle.submit_for_review(listing.id)
    return lifecycle.publish(listing.id)


@pytest.fixture
def client(session_factory):
    from righub.main import app

    def _get_test_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_test_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(settings):
    def _headers(user):
        token = jwt.encode({"sub": str(user.id)}, settings.secret_key, algorithm=settings.algorithm)
        return {"Authorization": f"Bearer {token}"}

    return _headers
