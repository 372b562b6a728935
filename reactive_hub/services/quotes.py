"""
Commercial quotes and residential unlocks.

Quote: admin prices the job (PENDING_QUOTE), the owning customer accepts and
the job re-opens for bidding/assignment.
Unlock: a contractor pays the job's unlock fee (free for subscribers) to see
the customer's contact details.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from ..errors import Forbidden, InvalidState, Conflict, ValidationFailed
from ..models.enums import JobStatus, PayType
from ..models.models import Job, JobUnlock, User
from .audit import record_audit
from .job_state import get_job_or_404, claim_job, transaction
from .notifications import notify_user, job_payload
from .permissions import is_admin, is_job_owner, is_contractor
from .subscriptions import has_active_subscription


logger = structlog.get_logger(__name__)

QUOTABLE_STATUSES = (JobStatus.DRAFT, JobStatus.OPEN, JobStatus.PENDING_QUOTE)
ALREADY_UNLOCKED_MESSAGE = "Job already unlocked"


@dataclass
class UnlockResult:
    unlock: JobUnlock
    job: Job
    subscriber: bool


def create_quote(
    db: Session,
    job_id: int,
    actor: User,
    *,
    quote_amount: Decimal,
    quote_notes: Optional[str] = None,
    contractor_pay_type: Optional[PayType] = None,
    contractor_pay_rate: Optional[Decimal] = None,
    unlock_fee: Optional[Decimal] = None,
) -> Job:
    if not is_admin(actor):
        raise Forbidden("Only admins can issue quotes")
    job = get_job_or_404(db, job_id, for_update=True)
    if job.status not in QUOTABLE_STATUSES:
        raise InvalidState("Quotes can only be issued before a contractor is assigned")
    if quote_amount is None or Decimal(str(quote_amount)) <= 0:
        raise ValidationFailed("Quote amount must be positive")

    values = {
        "status": JobStatus.PENDING_QUOTE,
        "quote_amount": quote_amount,
        "quote_notes": quote_notes,
        "quote_accepted": False,
    }
    # Unset terms keep their previous values
    if contractor_pay_type is not None:
        values["contractor_pay_type"] = contractor_pay_type
    if contractor_pay_rate is not None:
        values["contractor_pay_rate"] = contractor_pay_rate
    if unlock_fee is not None:
        values["unlock_fee"] = unlock_fee

    previous = JobStatus(job.status)
    with transaction(db):
        claim_job(db, job, [previous], "Job status changed concurrently, please retry", **values)
        record_audit(
            db, "job", job.id, "QUOTE", actor=actor,
            changes_json={"status": {"before": previous.value, "after": "PENDING_QUOTE"}},
            context={k: v for k, v in values.items() if k != "status"},
        )
        notify_user(db, job.customer, "quote_created", job_payload(job, quote_amount=quote_amount))
    db.refresh(job)
    logger.info("quote_created", job_id=job.id, actor_id=actor.id)
    return job


def accept_quote(db: Session, job_id: int, actor: User) -> Job:
    job = get_job_or_404(db, job_id, for_update=True)
    if not is_job_owner(actor, job):
        raise Forbidden("Access denied")
    if job.status != JobStatus.PENDING_QUOTE:
        raise InvalidState("Job is not awaiting quote acceptance")
    if job.quote_amount is None:
        raise InvalidState("Job has no quote to accept")

    with transaction(db):
        claim_job(
            db, job, [JobStatus.PENDING_QUOTE], "Job is not awaiting quote acceptance",
            status=JobStatus.OPEN, quote_accepted=True,
        )
        record_audit(db, "job", job.id, "ACCEPT_QUOTE", actor=actor, changes_json={"status": {"before": "PENDING_QUOTE", "after": "OPEN"}})
    db.refresh(job)
    logger.info("quote_accepted", job_id=job.id, customer_id=actor.id)
    return job


def unlock_job(db: Session, job_id: int, contractor: User) -> UnlockResult:
    if not is_contractor(contractor):
        raise Forbidden("Only contractors can unlock jobs")
    job = get_job_or_404(db, job_id)

    existing = db.query(JobUnlock).filter(
        JobUnlock.job_id == job.id,
        JobUnlock.contractor_id == contractor.id,
    ).first()
    if existing is not None:
        raise Conflict(ALREADY_UNLOCKED_MESSAGE)

    subscriber = has_active_subscription(db, contractor.id)
    paid_amount = Decimal("0") if subscriber else (Decimal(str(job.unlock_fee)) if job.unlock_fee is not None else Decimal("0"))

    unlock = JobUnlock(job_id=job.id, contractor_id=contractor.id, paid_amount=paid_amount)
    # TODO: capture paid_amount through the payment provider once one is integrated
    with transaction(db, ALREADY_UNLOCKED_MESSAGE):
        db.add(unlock)
        db.flush()
        record_audit(db, "unlock", unlock.id, "UNLOCK", actor=contractor, context={"job_id": job.id, "paid_amount": paid_amount, "subscriber": subscriber})
    logger.info("job_unlocked", job_id=job.id, contractor_id=contractor.id, paid_amount=str(paid_amount), subscriber=subscriber)
    return UnlockResult(unlock=unlock, job=job, subscriber=subscriber)
