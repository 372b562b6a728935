"""
Permission checks for the job workflow.

Every Role must appear in ROLE_CAPABILITIES; adding a role without deciding
its capabilities fails at import time.
"""
from enum import Enum
from typing import Dict, FrozenSet

from sqlalchemy.orm import Session

from ..models.enums import Role, JobStatus
from ..models.models import User, Job, Bid, JobUnlock


class Capability(str, Enum):
    POST_JOBS = "post_jobs"
    BID = "bid"
    UNLOCK = "unlock"
    SUBSCRIBE = "subscribe"
    ACCEPT_QUOTES = "accept_quotes"
    MANAGE_ALL_JOBS = "manage_all_jobs"


ROLE_CAPABILITIES: Dict[Role, FrozenSet[Capability]] = {
    Role.ADMIN: frozenset({Capability.POST_JOBS, Capability.MANAGE_ALL_JOBS}),
    Role.SUBCONTRACTOR: frozenset({Capability.BID, Capability.UNLOCK, Capability.SUBSCRIBE}),
    Role.CUST_RESIDENTIAL: frozenset({Capability.POST_JOBS, Capability.ACCEPT_QUOTES}),
    Role.CUST_COMMERCIAL: frozenset({Capability.POST_JOBS, Capability.ACCEPT_QUOTES}),
    Role.EMPLOYEE: frozenset(),
}

_missing = set(Role) - set(ROLE_CAPABILITIES)
if _missing:
    raise RuntimeError(f"Roles without capabilities: {sorted(r.value for r in _missing)}")

CUSTOMER_ROLES = (Role.CUST_RESIDENTIAL, Role.CUST_COMMERCIAL)


def has_capability(user: User, capability: Capability) -> bool:
    return capability in ROLE_CAPABILITIES[Role(user.role)]


def is_admin(user: User) -> bool:
    return has_capability(user, Capability.MANAGE_ALL_JOBS)


def is_contractor(user: User) -> bool:
    return has_capability(user, Capability.BID)


def is_customer(user: User) -> bool:
    return has_capability(user, Capability.ACCEPT_QUOTES)


def is_job_owner(user: User, job: Job) -> bool:
    return job.customer_id == user.id


def is_assigned_contractor(user: User, job: Job) -> bool:
    assignment = job.active_assignment
    return assignment is not None and assignment.user_id == user.id


def has_unlocked(db: Session, user: User, job: Job) -> bool:
    return db.query(JobUnlock).filter(
        JobUnlock.job_id == job.id,
        JobUnlock.contractor_id == user.id,
    ).first() is not None


def can_view_job(db: Session, user: User, job: Job) -> bool:
    """
    - Admin and the owning customer see any job
    - The assigned contractor, or a contractor who bid, sees the job
    - Any contractor may see OPEN jobs (so they can bid)
    """
    if is_admin(user) or is_job_owner(user, job) or is_assigned_contractor(user, job):
        return True
    if is_contractor(user):
        if job.status == JobStatus.OPEN:
            return True
        has_bid = db.query(Bid).filter(Bid.job_id == job.id, Bid.contractor_id == user.id).first()
        return has_bid is not None
    return False


def can_view_customer_contact(db: Session, user: User, job: Job) -> bool:
    """Contractors only see customer PII after unlocking the job."""
    if is_admin(user) or is_job_owner(user, job):
        return True
    if is_contractor(user):
        return has_unlocked(db, user, job)
    return False
