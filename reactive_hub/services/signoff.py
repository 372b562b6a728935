"""
Completion sign-off.

    submit_completion -> PENDING
    PENDING  --approve-->  APPROVED
    PENDING  --dispute-->  DISPUTED --resolve--> APPROVED | PENDING

One JobSignoff row per job; resubmitting resets it to PENDING.
"""
from dataclasses import dataclass
from typing import Optional, List, Dict, Any

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import Forbidden, InvalidState, ValidationFailed
from ..models.enums import JobStatus, SignoffStatus
from ..models.models import ContractorProfile, Job, JobSignoff, Review, User
from .audit import record_audit
from .job_state import get_job_or_404, apply_status, transaction
from .notifications import notify_user, notify_admins, job_payload
from .permissions import is_admin, is_job_owner, is_assigned_contractor
from .time_rules import utc_now


logger = structlog.get_logger(__name__)

NOT_SUBMITTED_MESSAGE = "Contractor has not yet submitted completion"
SUBMITTABLE_STATUSES = (JobStatus.IN_PROGRESS, JobStatus.SCHEDULED)
APPROVABLE_STATUSES = (JobStatus.COMPLETED, JobStatus.IN_PROGRESS)


@dataclass
class SignoffResult:
    job: Job
    signoff: JobSignoff
    review: Optional[Review] = None


def _get_signoff(db: Session, job_id: int) -> Optional[JobSignoff]:
    return db.query(JobSignoff).filter(JobSignoff.job_id == job_id).first()


def _require_owner_or_admin(actor: User, job: Job) -> None:
    if not is_admin(actor) and not is_job_owner(actor, job):
        raise Forbidden("Access denied")


def _require_pending_signoff(db: Session, job: Job) -> JobSignoff:
    if not job.contractor_signed_off:
        raise InvalidState(NOT_SUBMITTED_MESSAGE)
    signoff = _get_signoff(db, job.id)
    if signoff is None:
        raise InvalidState(NOT_SUBMITTED_MESSAGE)
    if signoff.status != SignoffStatus.PENDING:
        raise InvalidState(f"Sign-off is already {SignoffStatus(signoff.status).value}")
    return signoff


def submit_completion(
    db: Session,
    job_id: int,
    actor: User,
    completion_notes: Optional[str] = None,
    completion_photos: Optional[List[str]] = None,
) -> SignoffResult:
    job = get_job_or_404(db, job_id, for_update=True)
    if not is_admin(actor) and not is_assigned_contractor(actor, job):
        raise Forbidden("You are not assigned to this job")
    if job.status not in SUBMITTABLE_STATUSES:
        raise InvalidState("Job must be in progress to submit completion")

    previous = JobStatus(job.status)
    signoff = _get_signoff(db, job.id)
    with transaction(db, "Completion was submitted concurrently"):
        apply_status(
            db, job, JobStatus.COMPLETED, "Job must be in progress to submit completion",
            completed_at=utc_now(),
            completion_notes=completion_notes,
            completion_photos=list(completion_photos or []),
            contractor_signed_off=True,
        )
        if signoff is None:
            signoff = JobSignoff(job_id=job.id, status=SignoffStatus.PENDING)
            db.add(signoff)
        else:
            signoff.status = SignoffStatus.PENDING
        db.flush()
        record_audit(
            db, "job", job.id, "SUBMIT_COMPLETION", actor=actor,
            changes_json={"status": {"before": previous.value, "after": "COMPLETED"}},
            context={"signoff_id": signoff.id, "photos": len(completion_photos or [])},
        )
        notify_user(db, job.customer, "completion_submitted", job_payload(job))
    db.refresh(job)
    logger.info("completion_submitted", job_id=job.id, actor_id=actor.id)
    return SignoffResult(job=job, signoff=signoff)


def _recompute_rating(db: Session, contractor_id: int) -> Optional[float]:
    average = db.query(func.avg(Review.rating)).filter(Review.reviewee_id == contractor_id).scalar()
    profile = db.query(ContractorProfile).filter(ContractorProfile.user_id == contractor_id).first()
    if profile is not None and average is not None:
        profile.rating = float(average)
    return float(average) if average is not None else None


def approve_signoff(
    db: Session,
    job_id: int,
    actor: User,
    customer_notes: Optional[str] = None,
    rating: Optional[int] = None,
    review_comment: Optional[str] = None,
) -> SignoffResult:
    job = get_job_or_404(db, job_id, for_update=True)
    _require_owner_or_admin(actor, job)
    signoff = _require_pending_signoff(db, job)
    if job.status not in APPROVABLE_STATUSES:
        raise InvalidState(f"Cannot approve sign-off while job is {JobStatus(job.status).value}")
    if rating is not None and not 1 <= rating <= 5:
        raise ValidationFailed("Rating must be between 1 and 5")

    assignment = job.active_assignment
    review = None
    previous = JobStatus(job.status)
    with transaction(db, "Sign-off was changed concurrently"):
        if previous != JobStatus.COMPLETED:
            apply_status(db, job, JobStatus.COMPLETED)
        signoff.status = SignoffStatus.APPROVED
        signoff.customer_notes = customer_notes
        signoff.signed_at = utc_now()

        if rating is not None and assignment is not None:
            review = db.query(Review).filter(Review.job_id == job.id, Review.reviewer_id == actor.id).first()
            if review is None:
                review = Review(job_id=job.id, reviewer_id=actor.id, reviewee_id=assignment.user_id)
                db.add(review)
            review.rating = rating
            review.comment = review_comment
            db.flush()
            _recompute_rating(db, assignment.user_id)

        record_audit(
            db, "signoff", signoff.id, "APPROVE", actor=actor,
            changes_json={"status": {"before": "PENDING", "after": "APPROVED"}},
            context={"job_id": job.id, "rating": rating},
        )
        notify_user(db, assignment.user if assignment else None, "signoff_approved", job_payload(job))
    db.refresh(job)
    logger.info("signoff_approved", job_id=job.id, actor_id=actor.id, rating=rating)
    return SignoffResult(job=job, signoff=signoff, review=review)


def dispute_signoff(db: Session, job_id: int, actor: User, dispute_reason: Optional[str]) -> SignoffResult:
    job = get_job_or_404(db, job_id, for_update=True)
    _require_owner_or_admin(actor, job)
    if not dispute_reason or len(dispute_reason.strip()) < settings.dispute_reason_min_chars:
        raise ValidationFailed("Please provide a detailed dispute reason")
    signoff = _require_pending_signoff(db, job)

    previous = JobStatus(job.status)
    with transaction(db, "Sign-off was changed concurrently"):
        apply_status(db, job, JobStatus.IN_PROGRESS)
        signoff.status = SignoffStatus.DISPUTED
        signoff.dispute_reason = dispute_reason
        signoff.disputed_at = utc_now()
        record_audit(
            db, "signoff", signoff.id, "DISPUTE", actor=actor,
            changes_json={"status": {"before": "PENDING", "after": "DISPUTED"}, "job_status": {"before": previous.value, "after": "IN_PROGRESS"}},
            context={"job_id": job.id},
        )
        notify_admins(db, "signoff_disputed", job_payload(job, dispute_reason=dispute_reason))
    db.refresh(job)
    logger.info("signoff_disputed", job_id=job.id, actor_id=actor.id)
    return SignoffResult(job=job, signoff=signoff)


def resolve_dispute(
    db: Session,
    job_id: int,
    actor: User,
    resolution: str,
    resolution_notes: Optional[str] = None,
    final_status: Optional[JobStatus] = None,
) -> SignoffResult:
    if not is_admin(actor):
        raise Forbidden("Only admins can resolve disputes")
    job = get_job_or_404(db, job_id, for_update=True)
    signoff = _get_signoff(db, job.id)
    if signoff is None or signoff.status != SignoffStatus.DISPUTED:
        raise InvalidState("No active dispute for this job")

    approved = resolution == "approved"
    target = final_status or (JobStatus.COMPLETED if approved else JobStatus.IN_PROGRESS)
    previous = JobStatus(job.status)
    assignee = job.active_assignment.user if job.active_assignment else None
    with transaction(db, "Sign-off was changed concurrently"):
        apply_status(db, job, target)
        signoff.status = SignoffStatus.APPROVED if approved else SignoffStatus.PENDING
        signoff.resolved_at = utc_now()
        signoff.resolution_notes = resolution_notes
        record_audit(
            db, "signoff", signoff.id, "RESOLVE", actor=actor,
            changes_json={
                "status": {"before": "DISPUTED", "after": SignoffStatus(signoff.status).value},
                "job_status": {"before": previous.value, "after": target.value},
            },
            context={"job_id": job.id, "resolution": resolution},
        )
        payload = job_payload(job, resolution=resolution)
        notify_user(db, job.customer, "dispute_resolved", payload)
        notify_user(db, assignee, "dispute_resolved", payload)
    db.refresh(job)
    logger.info("dispute_resolved", job_id=job.id, actor_id=actor.id, resolution=resolution, job_status=target.value)
    return SignoffResult(job=job, signoff=signoff)


def get_signoff_status(db: Session, job_id: int, user: User) -> Dict[str, Any]:
    job = get_job_or_404(db, job_id)
    if not (is_admin(user) or is_job_owner(user, job) or is_assigned_contractor(user, job)):
        raise Forbidden("Access denied")
    assignment = job.active_assignment
    return {
        "job": job,
        "signoff": job.signoff,
        "contractor": assignment.user if assignment else None,
    }


def list_pending_signoffs(db: Session, customer: User) -> List[Job]:
    return (
        db.query(Job)
        .join(JobSignoff, JobSignoff.job_id == Job.id)
        .filter(
            Job.customer_id == customer.id,
            Job.contractor_signed_off.is_(True),
            JobSignoff.status == SignoffStatus.PENDING,
        )
        .order_by(Job.completed_at.desc(), Job.id.desc())
        .all()
    )


def list_disputed_jobs(db: Session) -> List[Job]:
    return (
        db.query(Job)
        .join(JobSignoff, JobSignoff.job_id == Job.id)
        .filter(JobSignoff.status == SignoffStatus.DISPUTED)
        .order_by(JobSignoff.disputed_at.desc(), Job.id.desc())
        .all()
    )
