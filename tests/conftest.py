import os

# Settings are read at import time, so the test environment goes in first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_DB"] = "false"
os.environ["ENABLE_METRICS"] = "false"
os.environ["RATE_LIMIT"] = "10000/minute"
os.environ["JWT_SECRET"] = "test-secret"
os.environ.pop("COMMS_LOG_DIR", None)

from decimal import Decimal
from itertools import count

import pytest
from fastapi.testclient import TestClient

from reactive_hub.db import Base, engine, SessionLocal
from reactive_hub.auth.security import create_access_token, get_password_hash
from reactive_hub.models.enums import Role, UserStatus, CustomerType, JobStatus, SubscriptionType
from reactive_hub.models.models import (
    User,
    ContractorProfile,
    CustomerProfile,
    Job,
    Assignment,
    Subscription,
)
from reactive_hub.services.time_rules import utc_now


LONDON = (51.5074, -0.1278)
_seq = count(1)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    from reactive_hub.main import app
    return TestClient(app)


@pytest.fixture
def make_user(db):
    def _make(role: Role, email: str = None, password: str = "password123", phone: str = "+447700900000", **profile):
        n = next(_seq)
        user = User(
            email=email or f"{role.value.lower()}{n}@example.com",
            password_hash=get_password_hash(password),
            role=role,
            status=UserStatus.ACTIVE,
            first_name=profile.pop("first_name", "Test"),
            last_name=profile.pop("last_name", f"User{n}"),
            phone=phone,
        )
        db.add(user)
        db.flush()
        if role == Role.SUBCONTRACTOR:
            db.add(ContractorProfile(
                user_id=user.id,
                skills=profile.get("skills", ["plumbing"]),
                hourly_rate=profile.get("hourly_rate"),
                latitude=profile.get("latitude"),
                longitude=profile.get("longitude"),
                rating=0.0,
                is_verified=False,
            ))
        elif role in (Role.CUST_RESIDENTIAL, Role.CUST_COMMERCIAL):
            db.add(CustomerProfile(
                user_id=user.id,
                type=CustomerType.COMMERCIAL if role == Role.CUST_COMMERCIAL else CustomerType.RESIDENTIAL,
                address=profile.get("address", "221B Baker Street, London"),
            ))
        db.commit()
        return user

    return _make


@pytest.fixture
def admin(make_user):
    return make_user(Role.ADMIN)


@pytest.fixture
def customer(make_user):
    return make_user(Role.CUST_RESIDENTIAL)


@pytest.fixture
def contractor(make_user):
    return make_user(Role.SUBCONTRACTOR, latitude=LONDON[0], longitude=LONDON[1])


@pytest.fixture
def make_job(db):
    def _make(customer: User, status: JobStatus = JobStatus.OPEN, **fields):
        job = Job(
            customer_id=customer.id,
            title=fields.pop("title", "Fix leaking tap"),
            description=fields.pop("description", "Kitchen tap drips all day long"),
            latitude=fields.pop("latitude", LONDON[0]),
            longitude=fields.pop("longitude", LONDON[1]),
            status=status,
            contractor_signed_off=fields.pop("contractor_signed_off", False),
            **fields,
        )
        db.add(job)
        db.commit()
        return job

    return _make


@pytest.fixture
def assigned_job(db, make_job):
    """Build a job already bound to a contractor in the given status."""
    def _make(customer: User, contractor: User, status: JobStatus = JobStatus.ASSIGNED, **fields):
        job = make_job(customer, status=status, **fields)
        db.add(Assignment(job_id=job.id, user_id=contractor.id, assigned_at=utc_now(), active=True))
        db.commit()
        db.refresh(job)
        return job

    return _make


@pytest.fixture
def subscribe(db):
    def _subscribe(user: User, days: int = 30, active: bool = True):
        from datetime import timedelta
        now = utc_now()
        sub = Subscription(user_id=user.id, type=SubscriptionType.MONTHLY, start_date=now, end_date=now + timedelta(days=days), active=active)
        db.add(sub)
        db.commit()
        return sub

    return _subscribe


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"))
