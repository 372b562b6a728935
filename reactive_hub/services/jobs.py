"""
Job creation and read-side queries.
"""
from decimal import Decimal
from typing import Optional, List

import structlog
from sqlalchemy import or_, exists
from sqlalchemy.orm import Session

from ..errors import Forbidden, InvalidState
from ..models.enums import JobStatus
from ..models.models import Job, User, Assignment
from .audit import record_audit
from .job_state import get_job_or_404, apply_status, transaction
from .notifications import notify_user, job_payload
from .permissions import (
    is_admin,
    is_contractor,
    is_customer,
    is_job_owner,
    can_view_job,
)


logger = structlog.get_logger(__name__)

# Statuses a customer may cancel from; admins may also cancel IN_PROGRESS work
CUSTOMER_CANCELLABLE = (
    JobStatus.DRAFT,
    JobStatus.PENDING_QUOTE,
    JobStatus.OPEN,
    JobStatus.ASSIGNED,
    JobStatus.SCHEDULED,
)
ADMIN_CANCELLABLE = CUSTOMER_CANCELLABLE + (JobStatus.IN_PROGRESS,)


def create_job(
    db: Session,
    customer: User,
    *,
    title: str,
    description: str,
    budget: Optional[Decimal] = None,
    location: Optional[str] = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    status: JobStatus = JobStatus.OPEN,
) -> Job:
    if status not in (JobStatus.OPEN, JobStatus.DRAFT):
        raise InvalidState("New jobs start as OPEN or DRAFT")
    job = Job(
        customer_id=customer.id,
        title=title,
        description=description,
        budget=budget,
        location=location,
        latitude=latitude,
        longitude=longitude,
        status=status,
        contractor_signed_off=False,
    )
    with transaction(db):
        db.add(job)
        db.flush()
        record_audit(db, "job", job.id, "CREATE", actor=customer, changes_json={"after": {"status": status.value, "title": title}})
    logger.info("job_created", job_id=job.id, customer_id=customer.id)
    return job


def list_jobs(db: Session, user: User, status: Optional[JobStatus] = None) -> List[Job]:
    """
    Role-filtered listing:
    - customers see their own jobs
    - contractors see OPEN jobs and jobs assigned to them
    - admins see everything
    """
    query = db.query(Job)
    if is_customer(user):
        query = query.filter(Job.customer_id == user.id)
    elif is_contractor(user):
        assigned_to_me = exists().where(
            Assignment.job_id == Job.id,
            Assignment.user_id == user.id,
            Assignment.active.is_(True),
        )
        query = query.filter(or_(Job.status == JobStatus.OPEN, assigned_to_me))
    elif not is_admin(user):
        return []
    if status is not None:
        query = query.filter(Job.status == status)
    return query.order_by(Job.created_at.desc(), Job.id.desc()).all()


def get_job_for_user(db: Session, job_id: int, user: User) -> Job:
    job = get_job_or_404(db, job_id)
    if not can_view_job(db, user, job):
        raise Forbidden("You do not have permission to view this job")
    return job


def cancel_job(db: Session, job_id: int, actor: User) -> Job:
    job = get_job_or_404(db, job_id, for_update=True)
    admin = is_admin(actor)
    if not admin and not is_job_owner(actor, job):
        raise Forbidden("Access denied")
    allowed = ADMIN_CANCELLABLE if admin else CUSTOMER_CANCELLABLE
    if job.status not in allowed:
        raise InvalidState(f"A {JobStatus(job.status).value} job cannot be cancelled")

    previous = JobStatus(job.status)
    assignee = job.active_assignment.user if job.active_assignment else None
    with transaction(db):
        apply_status(db, job, JobStatus.CANCELLED)
        record_audit(db, "job", job.id, "CANCEL", actor=actor, changes_json={"status": {"before": previous.value, "after": "CANCELLED"}})
        notify_user(db, assignee, "job_cancelled", job_payload(job))
    db.refresh(job)
    logger.info("job_cancelled", job_id=job.id, actor_id=actor.id, previous_status=previous.value)
    return job
