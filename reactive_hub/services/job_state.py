"""
Shared helpers for job state transitions.

Transitions claim the job row with a compare-and-set UPDATE
(``WHERE status IN (...)``) so two requests racing on the same job cannot
both succeed; the loser sees ``InvalidState``.
"""
from contextlib import contextmanager
from typing import Iterable, Optional, Type

import structlog
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import NotFound, InvalidState, Conflict, ServiceError
from ..models.enums import JobStatus, ASSIGNED_STATUSES, UNASSIGNED_STATUSES
from ..models.models import Job, Assignment
from .time_rules import utc_now


logger = structlog.get_logger(__name__)


def get_job_or_404(db: Session, job_id: int, for_update: bool = False) -> Job:
    query = db.query(Job).filter(Job.id == job_id)
    if for_update:
        query = query.with_for_update()
    job = query.first()
    if job is None:
        raise NotFound("Job not found")
    return job


def claim_job(
    db: Session,
    job: Job,
    expected: Iterable[JobStatus],
    message: str,
    **values,
) -> None:
    """Conditionally update the job; raise InvalidState if its status moved on."""
    expected = list(expected)
    result = db.execute(
        update(Job)
        .where(Job.id == job.id, Job.status.in_(expected))
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        raise InvalidState(message)


def release_active_assignment(db: Session, job: Job) -> Optional[Assignment]:
    assignment = db.query(Assignment).filter(
        Assignment.job_id == job.id,
        Assignment.active.is_(True),
    ).first()
    if assignment is not None:
        assignment.active = False
        assignment.released_at = utc_now()
        db.flush()
    return assignment


def apply_status(db: Session, job: Job, new_status: JobStatus, message: Optional[str] = None, **values) -> None:
    """
    Move a job to new_status while keeping the assignment invariant:
    leaving the assigned family releases the active assignment, entering it
    without one is refused.
    """
    current = JobStatus(job.status)
    has_assignment = job.active_assignment is not None
    if new_status in ASSIGNED_STATUSES and not has_assignment:
        raise InvalidState(message or f"Use assignment to move a job into {new_status.value}")
    if new_status in UNASSIGNED_STATUSES and has_assignment:
        release_active_assignment(db, job)
    claim_job(db, job, [current], message or "Job status changed concurrently, please retry", status=new_status, **values)


@contextmanager
def transaction(db: Session, conflict_message: str = "Conflicting update", conflict_error: Type[ServiceError] = Conflict):
    """
    Commit everything staged inside the block as one unit.
    IntegrityError becomes conflict_error; any failure rolls back.
    """
    try:
        yield
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("integrity_conflict", error=str(exc.orig) if exc.orig else str(exc))
        raise conflict_error(conflict_message)
    except Exception:
        db.rollback()
        raise
