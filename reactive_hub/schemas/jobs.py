from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from pydantic import BaseModel, Field, field_validator

from ..models.enums import JobStatus, PayType


class JobCreate(BaseModel):
    title: str = Field(min_length=3, max_length=200)
    description: str = Field(min_length=10, max_length=5000)
    budget: Optional[Decimal] = Field(default=None, gt=0)
    location: Optional[str] = Field(default=None, max_length=500)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    status: JobStatus = JobStatus.OPEN  # OPEN or DRAFT

    @field_validator("title", "description")
    @classmethod
    def _strip(cls, v: str) -> str:
        return v.strip()


class BidCreate(BaseModel):
    amount: Decimal = Field(gt=0)
    notes: Optional[str] = Field(default=None, max_length=1000)


class AssignRequest(BaseModel):
    contractor_id: int


class ScheduleRequest(BaseModel):
    scheduled_date: datetime


class QuoteCreate(BaseModel):
    quote_amount: Decimal = Field(gt=0)
    quote_notes: Optional[str] = Field(default=None, max_length=5000)
    contractor_pay_type: Optional[PayType] = None
    contractor_pay_rate: Optional[Decimal] = Field(default=None, ge=0)
    unlock_fee: Optional[Decimal] = Field(default=None, ge=0)


class StatusUpdate(BaseModel):
    status: JobStatus


class AssignmentOut(BaseModel):
    id: int
    job_id: int
    user_id: int
    assigned_at: datetime
    active: bool
    released_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class JobOut(BaseModel):
    id: int
    customer_id: int
    title: str
    description: str
    budget: Optional[float] = None
    location: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    status: JobStatus
    created_at: datetime
    updated_at: Optional[datetime] = None
    scheduled_date: Optional[datetime] = None
    booking_deadline: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completion_notes: Optional[str] = None
    completion_photos: Optional[List[str]] = None
    contractor_signed_off: bool = False
    unlock_fee: Optional[float] = None
    quote_amount: Optional[float] = None
    quote_notes: Optional[str] = None
    quote_accepted: Optional[bool] = None
    contractor_pay_type: Optional[PayType] = None
    contractor_pay_rate: Optional[float] = None
    active_assignment: Optional[AssignmentOut] = None

    class Config:
        from_attributes = True


class CustomerContact(BaseModel):
    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class JobDetailOut(JobOut):
    # Only filled for viewers allowed to see the customer's contact details
    customer_contact: Optional[CustomerContact] = None


class BidOut(BaseModel):
    id: int
    job_id: int
    contractor_id: int
    amount: float
    notes: Optional[str] = None
    accepted: bool
    created_at: datetime

    class Config:
        from_attributes = True


class AssignResponse(BaseModel):
    job: JobOut
    assignment: AssignmentOut


class BidAcceptResponse(BaseModel):
    job: JobOut
    bid: BidOut
    assignment: AssignmentOut


class UnlockOut(BaseModel):
    id: int
    job_id: int
    contractor_id: int
    paid_amount: float
    created_at: datetime

    class Config:
        from_attributes = True


class UnlockResponse(BaseModel):
    unlock: UnlockOut
    job: JobDetailOut
    subscriber: bool


class MatchedJob(BaseModel):
    id: int
    title: str
    location: Optional[str] = None


class MatchProfile(BaseModel):
    skills: List[str] = []
    hourly_rate: Optional[float] = None
    rating: Optional[float] = None
    is_verified: bool = False


class MatchOut(BaseModel):
    id: int
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    distance_km: float
    contractor_profile: MatchProfile


class MatchesResponse(BaseModel):
    job: MatchedJob
    matches: List[MatchOut]
    total_found: int


class AuditLogOut(BaseModel):
    id: int
    entity_type: str
    entity_id: int
    action: str
    actor_id: Optional[int] = None
    actor_role: Optional[str] = None
    source: Optional[str] = None
    changes_json: Optional[dict] = None
    context: Optional[dict] = None
    timestamp_utc: datetime
    integrity_hash: Optional[str] = None

    class Config:
        from_attributes = True
