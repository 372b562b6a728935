#!/usr/bin/env python3
"""
Seed the local database with an admin, two customers and a handful of
contractors spread around London, plus one open job to match against.

Usage:
  python scripts/seed_demo_data.py [--password secret123] [--reset]

This script is idempotent: users are upserted by email and the demo job by
title, so running it twice leaves the same rows.
"""
import argparse
import os
import sys
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from reactive_hub.db import SessionLocal, Base, engine
from reactive_hub.models.enums import Role, UserStatus, CustomerType, JobStatus
from reactive_hub.models.models import User, ContractorProfile, CustomerProfile, Job
from reactive_hub.auth.security import get_password_hash


DEMO_JOB_TITLE = "Leaking kitchen tap"

# (email, first, last, skills, hourly rate, lat, lon)
CONTRACTORS = [
    ("plumber.soho@example.com", "Sam", "Piper", ["plumbing"], "45.00", 51.5136, -0.1365),
    ("sparky.camden@example.com", "Ella", "Watts", ["electrical"], "55.00", 51.5390, -0.1426),
    ("builder.croydon@example.com", "Tom", "Mason", ["building", "plastering"], "40.00", 51.3762, -0.0982),
    ("roofer.reading@example.com", "Rita", "Slate", ["roofing"], "50.00", 51.4543, -0.9781),
    ("plumber.birmingham@example.com", "Ben", "Copper", ["plumbing", "heating"], "38.00", 52.4862, -1.8904),
]


def ensure_user(session, email: str, password: str, role: Role, first_name: str, last_name: str) -> User:
    user = session.query(User).filter(User.email == email).first()
    if user:
        user.role = role
        user.first_name = first_name
        user.last_name = last_name
        user.status = UserStatus.ACTIVE
        session.flush()
        return user
    user = User(
        email=email,
        password_hash=get_password_hash(password),
        role=role,
        status=UserStatus.ACTIVE,
        first_name=first_name,
        last_name=last_name,
    )
    session.add(user)
    session.flush()
    return user


def ensure_contractor(session, password: str, email, first, last, skills, rate, lat, lon) -> User:
    user = ensure_user(session, email, password, Role.SUBCONTRACTOR, first, last)
    profile = session.query(ContractorProfile).filter(ContractorProfile.user_id == user.id).first()
    if profile is None:
        profile = ContractorProfile(user_id=user.id, rating=0.0)
        session.add(profile)
    profile.skills = skills
    profile.hourly_rate = Decimal(rate)
    profile.latitude = lat
    profile.longitude = lon
    profile.is_verified = True
    session.flush()
    return user


def ensure_customer(session, password: str, email: str, first: str, last: str, role: Role, address: str) -> User:
    user = ensure_user(session, email, password, role, first, last)
    profile = session.query(CustomerProfile).filter(CustomerProfile.user_id == user.id).first()
    if profile is None:
        profile = CustomerProfile(user_id=user.id)
        session.add(profile)
    profile.type = CustomerType.COMMERCIAL if role == Role.CUST_COMMERCIAL else CustomerType.RESIDENTIAL
    profile.address = address
    session.flush()
    return user


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed demo users and a job for local development")
    parser.add_argument("--password", default="password123", help="Password for every seeded user")
    parser.add_argument("--reset", action="store_true", help="Drop and recreate all tables first")
    args = parser.parse_args()

    if args.reset:
        Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    session = SessionLocal()
    try:
        ensure_user(session, "admin@example.com", args.password, Role.ADMIN, "Ada", "Admin")
        resident = ensure_customer(
            session, args.password, "resident@example.com", "Rosa", "Home",
            Role.CUST_RESIDENTIAL, "10 Downing Street, London",
        )
        ensure_customer(
            session, args.password, "facilities@example.com", "Carl", "Office",
            Role.CUST_COMMERCIAL, "1 Canada Square, London",
        )
        for row in CONTRACTORS:
            ensure_contractor(session, args.password, *row)

        job = session.query(Job).filter(Job.title == DEMO_JOB_TITLE, Job.customer_id == resident.id).first()
        if job is None:
            session.add(Job(
                customer_id=resident.id,
                title=DEMO_JOB_TITLE,
                description="Kitchen mixer tap drips constantly, needs a new cartridge.",
                budget=Decimal("120.00"),
                location="Westminster, London",
                latitude=51.5034,
                longitude=-0.1276,
                status=JobStatus.OPEN,
                unlock_fee=Decimal("15.00"),
            ))
        session.commit()
        print(f"Seeded {len(CONTRACTORS)} contractors, 2 customers and 1 admin")
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


if __name__ == "__main__":
    main()
