from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.enums import Role
from ..models.models import User
from ..auth.security import get_current_user, require_roles
from ..schemas.jobs import JobOut
from ..schemas.signoff import (
    CompletionRequest,
    ApproveRequest,
    DisputeRequest,
    ResolveRequest,
    SignoffOut,
    ReviewOut,
    SignoffResponse,
    SignoffStatusOut,
    SignoffJobOut,
    ContractorSummary,
)
from ..services import signoff as signoff_service
from ..services.permissions import CUSTOMER_ROLES


router = APIRouter(prefix="/signoff", tags=["signoff"])


def _response(message: str, result: signoff_service.SignoffResult) -> SignoffResponse:
    return SignoffResponse(
        message=message,
        job=JobOut.model_validate(result.job),
        signoff=SignoffOut.model_validate(result.signoff),
        review=ReviewOut.model_validate(result.review) if result.review is not None else None,
    )


@router.post("/jobs/{job_id}/complete", response_model=SignoffResponse)
def submit_completion(
    job_id: int,
    payload: CompletionRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(Role.SUBCONTRACTOR, Role.ADMIN)),
):
    result = signoff_service.submit_completion(db, job_id, user, payload.completion_notes, payload.completion_photos)
    return _response("Job completion submitted for customer approval", result)


@router.post("/jobs/{job_id}/approve", response_model=SignoffResponse)
def approve_signoff(
    job_id: int,
    payload: ApproveRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*CUSTOMER_ROLES, Role.ADMIN)),
):
    result = signoff_service.approve_signoff(
        db, job_id, user,
        customer_notes=payload.customer_notes,
        rating=payload.rating,
        review_comment=payload.review_comment,
    )
    return _response("Job signed off successfully", result)


@router.post("/jobs/{job_id}/dispute", response_model=SignoffResponse)
def dispute_signoff(
    job_id: int,
    payload: DisputeRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*CUSTOMER_ROLES, Role.ADMIN)),
):
    result = signoff_service.dispute_signoff(db, job_id, user, payload.dispute_reason)
    return _response("Dispute submitted. An admin will review.", result)


@router.post("/jobs/{job_id}/resolve", response_model=SignoffResponse)
def resolve_dispute(
    job_id: int,
    payload: ResolveRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(Role.ADMIN)),
):
    result = signoff_service.resolve_dispute(
        db, job_id, user,
        resolution=payload.resolution,
        resolution_notes=payload.resolution_notes,
        final_status=payload.final_status,
    )
    return _response("Dispute resolved", result)


@router.get("/jobs/{job_id}/signoff", response_model=SignoffStatusOut)
def get_signoff_status(job_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    status = signoff_service.get_signoff_status(db, job_id, user)
    job = status["job"]
    contractor = status["contractor"]
    return SignoffStatusOut(
        job_id=job.id,
        job_status=job.status,
        contractor_signed_off=job.contractor_signed_off,
        completed_at=job.completed_at,
        completion_notes=job.completion_notes,
        completion_photos=job.completion_photos,
        signoff=SignoffOut.model_validate(status["signoff"]) if status["signoff"] is not None else None,
        contractor=ContractorSummary.model_validate(contractor) if contractor is not None else None,
    )


@router.get("/pending", response_model=List[SignoffJobOut])
def list_pending(db: Session = Depends(get_db), user: User = Depends(require_roles(*CUSTOMER_ROLES))):
    return signoff_service.list_pending_signoffs(db, user)


@router.get("/disputed", response_model=List[SignoffJobOut])
def list_disputed(db: Session = Depends(get_db), _=Depends(require_roles(Role.ADMIN))):
    return signoff_service.list_disputed_jobs(db)
