from typing import Optional, List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.enums import Role, JobStatus
from ..models.models import Job, User
from ..auth.security import get_current_user, require_roles, require_capabilities
from ..schemas.jobs import (
    JobCreate,
    BidCreate,
    AssignRequest,
    ScheduleRequest,
    QuoteCreate,
    StatusUpdate,
    JobOut,
    JobDetailOut,
    CustomerContact,
    BidOut,
    AssignmentOut,
    AssignResponse,
    BidAcceptResponse,
    UnlockOut,
    UnlockResponse,
    MatchesResponse,
    AuditLogOut,
)
from ..services import jobs as job_service
from ..services import bids as bid_service
from ..services import assignments as assignment_service
from ..services import quotes as quote_service
from ..services import scheduling as scheduling_service
from ..services.geo_match import match_contractors_for_job
from ..services.audit import get_audit_logs
from ..services.job_state import get_job_or_404
from ..services.permissions import Capability, can_view_customer_contact, CUSTOMER_ROLES


router = APIRouter(prefix="/jobs", tags=["jobs"])


def customer_contact(customer: User) -> CustomerContact:
    profile = customer.customer_profile
    return CustomerContact(
        id=customer.id,
        email=customer.email,
        first_name=customer.first_name,
        last_name=customer.last_name,
        phone=customer.phone,
        address=profile.address if profile else None,
    )


def job_detail(job: Job, include_contact: bool) -> JobDetailOut:
    out = JobDetailOut.model_validate(job)
    if include_contact:
        out.customer_contact = customer_contact(job.customer)
    return out


@router.post("", response_model=JobOut, status_code=201)
def create_job(
    payload: JobCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_capabilities(Capability.POST_JOBS)),
):
    return job_service.create_job(
        db,
        user,
        title=payload.title,
        description=payload.description,
        budget=payload.budget,
        location=payload.location,
        latitude=payload.latitude,
        longitude=payload.longitude,
        status=payload.status,
    )


@router.get("", response_model=List[JobOut])
def list_jobs(
    status: Optional[JobStatus] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return job_service.list_jobs(db, user, status)


@router.get("/{job_id}", response_model=JobDetailOut)
def get_job(job_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    job = job_service.get_job_for_user(db, job_id, user)
    return job_detail(job, can_view_customer_contact(db, user, job))


@router.get("/{job_id}/matches", response_model=MatchesResponse)
def get_matches(
    job_id: int,
    max_distance: Optional[float] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
    _=Depends(require_roles(Role.ADMIN)),
):
    job = get_job_or_404(db, job_id)
    matches = match_contractors_for_job(db, job, max_distance_km=max_distance, limit=limit)
    return {
        "job": {"id": job.id, "title": job.title, "location": job.location},
        "matches": [m.to_dict() for m in matches],
        "total_found": len(matches),
    }


@router.get("/{job_id}/bids", response_model=List[BidOut])
def list_bids(job_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return bid_service.list_bids(db, job_id, user)


@router.post("/{job_id}/bid", response_model=BidOut, status_code=201)
def place_bid(
    job_id: int,
    payload: BidCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_capabilities(Capability.BID)),
):
    return bid_service.place_bid(db, job_id, user, payload.amount, payload.notes)


@router.post("/{job_id}/assign", response_model=AssignResponse)
def assign_job(
    job_id: int,
    payload: AssignRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(Role.ADMIN)),
):
    result = assignment_service.assign_job(db, job_id, payload.contractor_id, user)
    return AssignResponse(job=JobOut.model_validate(result.job), assignment=AssignmentOut.model_validate(result.assignment))


@router.post("/{job_id}/bids/{bid_id}/accept", response_model=BidAcceptResponse)
def accept_bid(
    job_id: int,
    bid_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*CUSTOMER_ROLES, Role.ADMIN)),
):
    result = assignment_service.accept_bid(db, job_id, bid_id, user)
    return BidAcceptResponse(
        job=JobOut.model_validate(result.job),
        bid=BidOut.model_validate(result.bid),
        assignment=AssignmentOut.model_validate(result.assignment),
    )


@router.post("/{job_id}/schedule", response_model=JobOut)
def schedule_job(
    job_id: int,
    payload: ScheduleRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return scheduling_service.schedule_job(db, job_id, payload.scheduled_date, user)


@router.post("/{job_id}/quote", response_model=JobOut)
def create_quote(
    job_id: int,
    payload: QuoteCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(Role.ADMIN)),
):
    return quote_service.create_quote(
        db,
        job_id,
        user,
        quote_amount=payload.quote_amount,
        quote_notes=payload.quote_notes,
        contractor_pay_type=payload.contractor_pay_type,
        contractor_pay_rate=payload.contractor_pay_rate,
        unlock_fee=payload.unlock_fee,
    )


@router.post("/{job_id}/accept-quote", response_model=JobOut)
def accept_quote(
    job_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_capabilities(Capability.ACCEPT_QUOTES)),
):
    return quote_service.accept_quote(db, job_id, user)


@router.post("/{job_id}/unlock", response_model=UnlockResponse)
def unlock_job(
    job_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_capabilities(Capability.UNLOCK)),
):
    result = quote_service.unlock_job(db, job_id, user)
    return UnlockResponse(
        unlock=UnlockOut.model_validate(result.unlock),
        job=job_detail(result.job, include_contact=True),
        subscriber=result.subscriber,
    )


@router.patch("/{job_id}/status", response_model=JobOut)
def update_status(
    job_id: int,
    payload: StatusUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return scheduling_service.update_job_status(db, job_id, payload.status, user)


@router.post("/{job_id}/cancel", response_model=JobOut)
def cancel_job(job_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return job_service.cancel_job(db, job_id, user)


@router.get("/{job_id}/audit", response_model=List[AuditLogOut])
def job_audit_trail(
    job_id: int,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _=Depends(require_roles(Role.ADMIN)),
):
    get_job_or_404(db, job_id)
    return get_audit_logs(db, entity_type="job", entity_id=job_id, limit=limit, offset=offset)
