"""
Pytest configuration and shared fixtures.
"""

import math
import os

# Must be set before staff_verify builds its module-level engine
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from typing import Dict, Any
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from staff_verify.db.database import Base
from staff_verify.db.models import RosterEntry, Store, User, VerificationRequest
from staff_verify.services.score_engine import EARTH_RADIUS_M, normalize_name

STORE_LAT = 40.7128
STORE_LNG = -74.0060


def point_north(lat: float, lng: float, meters: float):
    """Point `meters` due north; haversine distance back is exactly `meters`."""
    return lat + math.degrees(meters / EARTH_RADIUS_M), lng


class RecordingNotifier:
    """Notifier that keeps emitted events in memory."""

    def __init__(self):
        self.events = []

    def emit(self, event):
        self.events.append(event)


class FailingNotifier:
    """Notifier whose delivery always fails."""

    def __init__(self):
        self.calls = 0

    def emit(self, event):
        self.calls += 1
        raise ConnectionError("notification sink unreachable")


@pytest.fixture
def engine():
    """Fresh in-memory database shared by every session in a test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store(db) -> Store:
    """Store with coordinates and a small roster."""
    store = Store(id="store-1", name="Downtown", address="1 Main St",
                  latitude=STORE_LAT, longitude=STORE_LNG)
    db.add(store)
    for email, name in [
        ("jane.doe@example.com", "Jane Doe"),
        ("sam.lee@example.com", "Sam Lee"),
    ]:
        db.add(RosterEntry(
            store_id="store-1",
            email=email,
            email_lower=email,
            name=name,
            normalized_name=normalize_name(name),
            store_name="Downtown",
        ))
    db.commit()
    return store


@pytest.fixture
def applicant(db, store) -> User:
    user = User(id="user-1", email="jane.doe@example.com", name="Jane Doe",
                store_id=store.id)
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def make_request(db, applicant):
    """Build and persist a verification request for the applicant."""

    def _make(**fields) -> VerificationRequest:
        values: Dict[str, Any] = {
            "applicant_id": applicant.id,
            "store_id": applicant.store_id,
            "applicant_email": applicant.email,
            "applicant_name": applicant.name,
            "photo_url": "https://cdn.example.com/verification/user-1/selfie.jpg",
            "status": "pending",
        }
        values.update(fields)
        request = VerificationRequest(**values)
        db.add(request)
        db.commit()
        db.refresh(request)
        return request

    return _make


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def roster_csv() -> str:
    """Roster export covering two stores."""
    return (
        "storeId,storeName,lat,lng,rosterEmail,rosterName,address\n"
        "store-9,Uptown,40.8,-73.95,Alex.Kim@Example.com ,Alex Kim,9 High St\n"
        "store-9,Uptown,40.8,-73.95,maria.g@example.com,María G.,9 High St\n"
        "store-9,Uptown,40.8,-73.95,,No Email,9 High St\n"
        "store-7,Airport,n/a,n/a,pat@example.com,Pat O'Neil,\n"
    )
