"""
Bid ledger: contractor offers on OPEN jobs.
"""
from decimal import Decimal
from typing import Optional, List

import structlog
from sqlalchemy.orm import Session

from ..errors import ValidationFailed, InvalidState, Conflict, Forbidden
from ..models.enums import JobStatus
from ..models.models import Bid, User
from .audit import record_audit
from .job_state import get_job_or_404, transaction
from .permissions import is_admin, is_job_owner, is_contractor


logger = structlog.get_logger(__name__)

DUPLICATE_BID_MESSAGE = "You have already placed a bid on this job"


def place_bid(
    db: Session,
    job_id: int,
    contractor: User,
    amount: Decimal,
    notes: Optional[str] = None,
) -> Bid:
    job = get_job_or_404(db, job_id)
    if job.status != JobStatus.OPEN:
        raise InvalidState("This job is no longer accepting bids")
    if amount is None or Decimal(str(amount)) <= 0:
        raise ValidationFailed("Bid amount must be positive")

    existing = db.query(Bid).filter(Bid.job_id == job.id, Bid.contractor_id == contractor.id).first()
    if existing is not None:
        raise Conflict(DUPLICATE_BID_MESSAGE)

    bid = Bid(job_id=job.id, contractor_id=contractor.id, amount=Decimal(str(amount)), notes=notes, accepted=False)
    # The (job_id, contractor_id) unique constraint catches a concurrent duplicate
    with transaction(db, DUPLICATE_BID_MESSAGE):
        db.add(bid)
        db.flush()
        record_audit(db, "bid", bid.id, "BID", actor=contractor, context={"job_id": job.id, "amount": bid.amount})
    logger.info("bid_placed", job_id=job.id, bid_id=bid.id, contractor_id=contractor.id)
    return bid


def list_bids(db: Session, job_id: int, user: User) -> List[Bid]:
    """Owner and admin see every bid; a contractor sees only their own."""
    job = get_job_or_404(db, job_id)
    query = db.query(Bid).filter(Bid.job_id == job.id)
    if is_admin(user) or is_job_owner(user, job):
        pass
    elif is_contractor(user):
        query = query.filter(Bid.contractor_id == user.id)
    else:
        raise Forbidden("Access denied")
    return query.order_by(Bid.amount.asc(), Bid.id.asc()).all()
