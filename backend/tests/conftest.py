"""
Shared fixtures: an in-memory database and helpers for seeding records.
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from snowshield.db import Base, init_db
from snowshield.models import Incident, SafetyWarning, WarningPincode


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


BASE_TIME = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


def make_incident(db, id, type="regular", pincode="12345", minutes=0, **kwargs):
    """Insert an incident stamped BASE_TIME + minutes (None leaves it unstamped)."""
    incident = Incident(
        id=id,
        type=type,
        title=kwargs.pop("title", f"Incident {id}"),
        description=kwargs.pop("description", "Snow on the road"),
        pincode=pincode,
        photos=kwargs.pop("photos", []),
        timestamp=None if minutes is None else BASE_TIME + timedelta(minutes=minutes),
        is_active=kwargs.pop("is_active", True),
        **kwargs,
    )
    db.add(incident)
    db.commit()
    return incident


def make_warning(db, id, pincodes, minutes=0, expiry=None, is_active=True, severity="medium"):
    warning = SafetyWarning(
        id=id,
        title=f"Warning {id}",
        description="Avalanche danger",
        severity=severity,
        timestamp=BASE_TIME + timedelta(minutes=minutes),
        expiry_time=expiry,
        is_active=is_active,
    )
    warning.pincodes = [WarningPincode(pincode=p, position=i) for i, p in enumerate(pincodes)]
    db.add(warning)
    db.commit()
    return warning
