"""
Assignment manager.

Both entry paths (admin direct-assign and bid acceptance) converge on the
same invariant: once a job is ASSIGNED it has exactly one active
Assignment. Every write of a path is committed in one transaction.
"""
from dataclasses import dataclass

import structlog
from sqlalchemy.orm import Session

from ..errors import Forbidden, NotFound, InvalidState, ValidationFailed
from ..models.enums import JobStatus, PayType, Role
from ..models.models import Assignment, Bid, Job, User
from .audit import record_audit
from .job_state import get_job_or_404, claim_job, transaction
from .notifications import notify_user, job_payload
from .permissions import is_admin, is_job_owner
from .time_rules import utc_now, booking_deadline_from


logger = structlog.get_logger(__name__)

ALREADY_ASSIGNED_MESSAGE = "This job has already been assigned"


@dataclass
class AssignmentResult:
    job: Job
    assignment: Assignment


@dataclass
class BidAcceptance:
    job: Job
    bid: Bid
    assignment: Assignment


def assign_job(db: Session, job_id: int, contractor_id: int, actor: User) -> AssignmentResult:
    if not is_admin(actor):
        raise Forbidden("Only admins can assign jobs directly")
    job = get_job_or_404(db, job_id, for_update=True)
    if job.status != JobStatus.OPEN:
        raise InvalidState(ALREADY_ASSIGNED_MESSAGE)

    contractor = db.query(User).filter(User.id == contractor_id).first()
    if contractor is None:
        raise NotFound("Contractor not found")
    if contractor.role != Role.SUBCONTRACTOR:
        raise ValidationFailed("Invalid contractor")

    with transaction(db, ALREADY_ASSIGNED_MESSAGE, conflict_error=InvalidState):
        claim_job(db, job, [JobStatus.OPEN], ALREADY_ASSIGNED_MESSAGE, status=JobStatus.ASSIGNED)
        assignment = Assignment(job=job, user_id=contractor.id, assigned_at=utc_now(), active=True)
        db.add(assignment)
        db.flush()
        record_audit(
            db, "job", job.id, "ASSIGN", actor=actor,
            changes_json={"status": {"before": "OPEN", "after": "ASSIGNED"}},
            context={"contractor_id": contractor.id, "assignment_id": assignment.id},
        )
        notify_user(db, contractor, "job_assigned", job_payload(job))
    db.refresh(job)
    logger.info("job_assigned", job_id=job.id, contractor_id=contractor.id, actor_id=actor.id)
    return AssignmentResult(job=job, assignment=assignment)


def accept_bid(db: Session, job_id: int, bid_id: int, actor: User) -> BidAcceptance:
    job = get_job_or_404(db, job_id, for_update=True)
    if not is_admin(actor) and not is_job_owner(actor, job):
        raise Forbidden("Access denied")

    bid = db.query(Bid).filter(Bid.id == bid_id).first()
    if bid is None or bid.job_id != job.id:
        raise NotFound("Bid not found")
    if job.status != JobStatus.OPEN:
        raise InvalidState("Bids can only be accepted while the job is open")

    now = utc_now()
    deadline = booking_deadline_from(now)
    with transaction(db, ALREADY_ASSIGNED_MESSAGE, conflict_error=InvalidState):
        claim_job(
            db, job, [JobStatus.OPEN], ALREADY_ASSIGNED_MESSAGE,
            status=JobStatus.ASSIGNED,
            booking_deadline=deadline,
            contractor_pay_type=PayType.FIXED,
            contractor_pay_rate=bid.amount,
        )
        bid.accepted = True
        assignment = Assignment(job=job, user_id=bid.contractor_id, assigned_at=now, active=True)
        db.add(assignment)
        db.flush()
        record_audit(
            db, "job", job.id, "ACCEPT_BID", actor=actor,
            changes_json={"status": {"before": "OPEN", "after": "ASSIGNED"}, "booking_deadline": deadline.isoformat()},
            context={"bid_id": bid.id, "contractor_id": bid.contractor_id, "amount": bid.amount},
        )
        notify_user(db, bid.contractor, "bid_accepted", job_payload(job, amount=bid.amount))
    db.refresh(job)
    logger.info("bid_accepted", job_id=job.id, bid_id=bid.id, contractor_id=bid.contractor_id, actor_id=actor.id)
    return BidAcceptance(job=job, bid=bid, assignment=assignment)
