from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field

from ..models.enums import JobStatus, SignoffStatus
from .jobs import JobOut


class CompletionRequest(BaseModel):
    completion_notes: Optional[str] = Field(default=None, max_length=5000)
    completion_photos: List[str] = []  # Photo URLs


class ApproveRequest(BaseModel):
    customer_notes: Optional[str] = Field(default=None, max_length=5000)
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    review_comment: Optional[str] = Field(default=None, max_length=5000)


class DisputeRequest(BaseModel):
    # Length is checked by the service so the message stays consistent
    dispute_reason: Optional[str] = None


class ResolveRequest(BaseModel):
    resolution: str  # "approved"; anything else sends the sign-off back to PENDING
    resolution_notes: Optional[str] = None
    final_status: Optional[JobStatus] = None


class SignoffOut(BaseModel):
    id: int
    job_id: int
    status: SignoffStatus
    customer_notes: Optional[str] = None
    dispute_reason: Optional[str] = None
    disputed_at: Optional[datetime] = None
    signed_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ReviewOut(BaseModel):
    id: int
    job_id: int
    reviewer_id: int
    reviewee_id: int
    rating: int
    comment: Optional[str] = None

    class Config:
        from_attributes = True


class ContractorSummary(BaseModel):
    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    class Config:
        from_attributes = True


class SignoffResponse(BaseModel):
    message: str
    job: JobOut
    signoff: SignoffOut
    review: Optional[ReviewOut] = None


class SignoffStatusOut(BaseModel):
    job_id: int
    job_status: JobStatus
    contractor_signed_off: bool
    completed_at: Optional[datetime] = None
    completion_notes: Optional[str] = None
    completion_photos: Optional[List[str]] = None
    signoff: Optional[SignoffOut] = None
    contractor: Optional[ContractorSummary] = None


class SignoffJobOut(JobOut):
    signoff: Optional[SignoffOut] = None
