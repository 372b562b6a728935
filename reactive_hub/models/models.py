from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import (
    String,
    DateTime,
    Boolean,
    ForeignKey,
    Integer,
    Float,
    Numeric,
    JSON,
    UniqueConstraint,
    Text,
    Index,
    Enum as SAEnum,
    text,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base
from ..services.time_rules import utc_now
from .enums import (
    Role,
    UserStatus,
    CustomerType,
    JobStatus,
    PayType,
    SubscriptionType,
    SignoffStatus,
)


def int_pk() -> Mapped[int]:
    return mapped_column(Integer, primary_key=True, autoincrement=True)


def enum_column(enum_cls, **kwargs):
    return mapped_column(SAEnum(enum_cls, native_enum=False, length=32, validate_strings=True), **kwargs)


Money = Numeric(10, 2)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = int_pk()
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[Role] = enum_column(Role, nullable=False, index=True)
    status: Mapped[UserStatus] = enum_column(UserStatus, nullable=False, default=UserStatus.ACTIVE)
    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    contractor_profile: Mapped[Optional["ContractorProfile"]] = relationship(back_populates="user", uselist=False)
    customer_profile: Mapped[Optional["CustomerProfile"]] = relationship(back_populates="user", uselist=False)
    subscription: Mapped[Optional["Subscription"]] = relationship(back_populates="user", uselist=False)


class ContractorProfile(Base):
    __tablename__ = "contractor_profiles"

    id: Mapped[int] = int_pk()
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    skills: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    hourly_rate: Mapped[Optional[Decimal]] = mapped_column(Money)
    rating: Mapped[float] = mapped_column(Float, default=0.0)  # Mean of all reviews
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    latitude: Mapped[Optional[float]] = mapped_column(Float)
    longitude: Mapped[Optional[float]] = mapped_column(Float)
    bio: Mapped[Optional[str]] = mapped_column(Text)

    user: Mapped[User] = relationship(back_populates="contractor_profile")


class CustomerProfile(Base):
    __tablename__ = "customer_profiles"

    id: Mapped[int] = int_pk()
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    type: Mapped[CustomerType] = enum_column(CustomerType, nullable=False, default=CustomerType.RESIDENTIAL)
    address: Mapped[Optional[str]] = mapped_column(String(500))
    billing_info: Mapped[Optional[str]] = mapped_column(String(1000))

    user: Mapped[User] = relationship(back_populates="customer_profile")


class Job(Base):
    __tablename__ = "jobs"

    id: Mapped[int] = int_pk()
    customer_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    budget: Mapped[Optional[Decimal]] = mapped_column(Money)
    location: Mapped[Optional[str]] = mapped_column(String(500))
    latitude: Mapped[Optional[float]] = mapped_column(Float)
    longitude: Mapped[Optional[float]] = mapped_column(Float)
    status: Mapped[JobStatus] = enum_column(JobStatus, nullable=False, default=JobStatus.OPEN, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)
    scheduled_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    booking_deadline: Mapped[Optional[datetime]] = mapped_column(DateTime)  # Set on bid acceptance
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    completion_notes: Mapped[Optional[str]] = mapped_column(Text)
    completion_photos: Mapped[Optional[list]] = mapped_column(JSON)  # List of photo URLs
    contractor_signed_off: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    unlock_fee: Mapped[Optional[Decimal]] = mapped_column(Money)
    # Commercial quote
    quote_amount: Mapped[Optional[Decimal]] = mapped_column(Money)
    quote_notes: Mapped[Optional[str]] = mapped_column(Text)
    quote_accepted: Mapped[Optional[bool]] = mapped_column(Boolean)
    contractor_pay_type: Mapped[Optional[PayType]] = enum_column(PayType)
    contractor_pay_rate: Mapped[Optional[Decimal]] = mapped_column(Money)

    customer: Mapped[User] = relationship(foreign_keys=[customer_id])
    bids: Mapped[List["Bid"]] = relationship(back_populates="job", order_by="Bid.id")
    assignments: Mapped[List["Assignment"]] = relationship(back_populates="job", order_by="Assignment.id")
    signoff: Mapped[Optional["JobSignoff"]] = relationship(back_populates="job", uselist=False)
    unlocks: Mapped[List["JobUnlock"]] = relationship(back_populates="job")

    @property
    def active_assignment(self) -> Optional["Assignment"]:
        for assignment in self.assignments:
            if assignment.active:
                return assignment
        return None


class Bid(Base):
    __tablename__ = "bids"

    id: Mapped[int] = int_pk()
    job_id: Mapped[int] = mapped_column(ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    contractor_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    accepted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    job: Mapped[Job] = relationship(back_populates="bids")
    contractor: Mapped[User] = relationship()

    __table_args__ = (
        UniqueConstraint("job_id", "contractor_id", name="uq_bid_job_contractor"),
        # At most one accepted bid per job
        Index(
            "uq_bid_accepted_per_job", "job_id", unique=True,
            sqlite_where=text("accepted = 1"), postgresql_where=text("accepted"),
        ),
    )


class Assignment(Base):
    """Binds one contractor to one job. Released, never deleted."""
    __tablename__ = "assignments"

    id: Mapped[int] = int_pk()
    job_id: Mapped[int] = mapped_column(ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    released_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    job: Mapped[Job] = relationship(back_populates="assignments")
    user: Mapped[User] = relationship()

    __table_args__ = (
        Index(
            "uq_assignment_active_job", "job_id", unique=True,
            sqlite_where=text("active = 1"), postgresql_where=text("active"),
        ),
    )


class JobUnlock(Base):
    __tablename__ = "job_unlocks"

    id: Mapped[int] = int_pk()
    job_id: Mapped[int] = mapped_column(ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    contractor_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    paid_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    job: Mapped[Job] = relationship(back_populates="unlocks")

    __table_args__ = (
        UniqueConstraint("job_id", "contractor_id", name="uq_unlock_job_contractor"),
    )


class Subscription(Base):
    __tablename__ = "subscriptions"

    id: Mapped[int] = int_pk()
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    type: Mapped[SubscriptionType] = enum_column(SubscriptionType, nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    user: Mapped[User] = relationship(back_populates="subscription")


class JobSignoff(Base):
    __tablename__ = "job_signoffs"

    id: Mapped[int] = int_pk()
    job_id: Mapped[int] = mapped_column(ForeignKey("jobs.id", ondelete="CASCADE"), unique=True, nullable=False)
    status: Mapped[SignoffStatus] = enum_column(SignoffStatus, nullable=False, default=SignoffStatus.PENDING)
    customer_notes: Mapped[Optional[str]] = mapped_column(Text)
    dispute_reason: Mapped[Optional[str]] = mapped_column(Text)
    disputed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    signed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)

    job: Mapped[Job] = relationship(back_populates="signoff")


class Review(Base):
    __tablename__ = "reviews"

    id: Mapped[int] = int_pk()
    job_id: Mapped[int] = mapped_column(ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    reviewer_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    reviewee_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)  # 1..5
    comment: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    __table_args__ = (
        UniqueConstraint("job_id", "reviewer_id", name="uq_review_job_reviewer"),
    )


class AuditLog(Base):
    """Append-only audit log for job workflow transitions"""
    __tablename__ = "audit_logs"

    id: Mapped[int] = int_pk()
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)  # job|bid|unlock|signoff|subscription|user
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)  # CREATE|BID|ASSIGN|ACCEPT_BID|QUOTE|...
    actor_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), index=True)
    actor_role: Mapped[Optional[str]] = mapped_column(String(50))
    source: Mapped[Optional[str]] = mapped_column(String(50))  # api|system|script
    changes_json: Mapped[Optional[dict]] = mapped_column(JSON)  # Before/after diff
    timestamp_utc: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False, index=True)
    context: Mapped[Optional[dict]] = mapped_column(JSON)
    integrity_hash: Mapped[Optional[str]] = mapped_column(String(64))  # SHA256 hash for integrity verification

    __table_args__ = (
        Index('idx_audit_entity', 'entity_type', 'entity_id'),
        Index('idx_audit_actor', 'actor_id', 'timestamp_utc'),
    )


class Notification(Base):
    """Outreach intents (email/sms). Delivery is external."""
    __tablename__ = "notifications"

    id: Mapped[int] = int_pk()
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    channel: Mapped[str] = mapped_column(String(20), nullable=False)  # email|sms
    template_key: Mapped[Optional[str]] = mapped_column(String(100))
    payload_json: Mapped[Optional[dict]] = mapped_column(JSON)
    status: Mapped[str] = mapped_column(String(20), default="logged")  # logged|skipped
    log_path: Mapped[Optional[str]] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    __table_args__ = (
        Index('idx_notifications_user_status', 'user_id', 'status'),
    )
