"""
Scheduling gate and manual status changes.
"""
from datetime import datetime

import structlog
from sqlalchemy.orm import Session

from ..errors import Forbidden, InvalidState, DeadlineExpired
from ..models.enums import JobStatus
from ..models.models import Job, User
from .audit import record_audit
from .job_state import get_job_or_404, claim_job, apply_status, transaction
from .notifications import notify_user, job_payload
from .permissions import is_admin, is_assigned_contractor
from .time_rules import to_naive_utc, is_past


logger = structlog.get_logger(__name__)

SCHEDULABLE_STATUSES = (JobStatus.ASSIGNED, JobStatus.SCHEDULED, JobStatus.IN_PROGRESS)
CONTRACTOR_TARGETS = (JobStatus.SCHEDULED, JobStatus.IN_PROGRESS)
TERMINAL_STATUSES = (JobStatus.CANCELLED, JobStatus.COMPLETED)


def schedule_job(db: Session, job_id: int, scheduled_date: datetime, actor: User) -> Job:
    job = get_job_or_404(db, job_id, for_update=True)
    admin = is_admin(actor)
    if not admin and not is_assigned_contractor(actor, job):
        raise Forbidden("Access denied")
    if job.status not in SCHEDULABLE_STATUSES or job.active_assignment is None:
        raise InvalidState("Only assigned jobs can be scheduled")
    # Admins may still book a job after the deadline
    if not admin and is_past(job.booking_deadline):
        raise DeadlineExpired("Booking deadline has passed")

    scheduled_date = to_naive_utc(scheduled_date)
    previous = JobStatus(job.status)
    with transaction(db):
        claim_job(
            db, job, SCHEDULABLE_STATUSES, "Job status changed concurrently, please retry",
            status=JobStatus.SCHEDULED, scheduled_date=scheduled_date,
        )
        record_audit(
            db, "job", job.id, "SCHEDULE", actor=actor,
            changes_json={"status": {"before": previous.value, "after": "SCHEDULED"}},
            context={"scheduled_date": scheduled_date.isoformat()},
        )
        notify_user(db, job.customer, "job_scheduled", job_payload(job, scheduled_date=scheduled_date))
    db.refresh(job)
    logger.info("job_scheduled", job_id=job.id, actor_id=actor.id, scheduled_date=scheduled_date.isoformat())
    return job


def update_job_status(db: Session, job_id: int, new_status: JobStatus, actor: User) -> Job:
    job = get_job_or_404(db, job_id, for_update=True)
    admin = is_admin(actor)
    if not admin:
        if not is_assigned_contractor(actor, job):
            raise Forbidden("Access denied")
        if new_status not in CONTRACTOR_TARGETS:
            raise Forbidden(f"Contractors cannot move a job to {new_status.value}")

    current = JobStatus(job.status)
    if new_status == JobStatus.COMPLETED:
        raise InvalidState("Jobs are completed through the sign-off workflow")
    if current in TERMINAL_STATUSES:
        raise InvalidState(f"A {current.value} job cannot change status")

    with transaction(db):
        apply_status(db, job, new_status)
        record_audit(db, "job", job.id, "STATUS", actor=actor, changes_json={"status": {"before": current.value, "after": new_status.value}})
        if new_status == JobStatus.CANCELLED:
            notify_user(db, job.customer, "job_cancelled", job_payload(job))
    db.refresh(job)
    logger.info("job_status_updated", job_id=job.id, actor_id=actor.id, before=current.value, after=new_status.value)
    return job
