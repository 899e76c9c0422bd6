"""
Shared fixtures: in-memory SQLite database, seeded employees and a schedule,
FastAPI TestClient, and bearer-token headers.
"""
import os

# Must be set before fieldclock.core.database builds its engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENVIRONMENT"] = "test"

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from fieldclock.core.database import Base, SessionLocal, engine
from fieldclock.core.security import create_access_token
from fieldclock.main import app
from fieldclock.models import Employee, Schedule

ADMIN = "admin@fieldclock.test"
FOREMAN = "foreman@fieldclock.test"
WORKER = "worker@fieldclock.test"
OTHER_WORKER = "other@fieldclock.test"

CHICAGO = {"latitude": 41.8781, "longitude": -87.6298}
MILWAUKEE = {"latitude": 43.0389, "longitude": -87.9065}


@pytest.fixture(autouse=True)
def tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def employees(db):
    rows = [
        Employee(email=ADMIN, first_name="Ada", last_name="Admin", role="admin"),
        Employee(email=FOREMAN, first_name="Fay", last_name="Foreman", role="foreman",
                 hourly_rate_site=Decimal("50.00"), hourly_rate_drive=Decimal("37.50")),
        Employee(email=WORKER, first_name="Will", last_name="Worker", role="field",
                 classification="Laborer", hourly_rate_site=Decimal("40.00"),
                 hourly_rate_drive=Decimal("30.00")),
        Employee(email=OTHER_WORKER, first_name="Olly", last_name="Other", role="field"),
    ]
    db.add_all(rows)
    db.commit()
    return {e.email: e for e in rows}


@pytest.fixture
def schedule(db, employees):
    row = Schedule(
        id="sched-1",
        title="Main St resurfacing",
        from_date=datetime.utcnow() - timedelta(days=1),
        estimate="E-100",
        customer_name="Village of Elgin",
        certified_payroll=True,
    )
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def second_schedule(db, employees):
    row = Schedule(id="sched-2", title="Depot cleanup", from_date=datetime.utcnow(), estimate="E-200")
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def client():
    return TestClient(app)


def auth(email: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(email)}"}


@pytest.fixture
def admin_headers(employees):
    return auth(ADMIN)


@pytest.fixture
def worker_headers(employees):
    return auth(WORKER)


@pytest.fixture
def other_headers(employees):
    return auth(OTHER_WORKER)
