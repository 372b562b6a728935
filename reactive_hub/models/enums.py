from enum import Enum


class Role(str, Enum):
    ADMIN = "ADMIN"
    SUBCONTRACTOR = "SUBCONTRACTOR"
    CUST_RESIDENTIAL = "CUST_RESIDENTIAL"
    CUST_COMMERCIAL = "CUST_COMMERCIAL"
    EMPLOYEE = "EMPLOYEE"


class UserStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"


class CustomerType(str, Enum):
    RESIDENTIAL = "RESIDENTIAL"
    COMMERCIAL = "COMMERCIAL"


class JobStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_QUOTE = "PENDING_QUOTE"
    OPEN = "OPEN"
    ASSIGNED = "ASSIGNED"
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# Statuses that require exactly one active Assignment
ASSIGNED_STATUSES = frozenset({
    JobStatus.ASSIGNED,
    JobStatus.SCHEDULED,
    JobStatus.IN_PROGRESS,
    JobStatus.COMPLETED,
})

# Statuses that require no active Assignment
UNASSIGNED_STATUSES = frozenset({
    JobStatus.DRAFT,
    JobStatus.PENDING_QUOTE,
    JobStatus.OPEN,
    JobStatus.CANCELLED,
})


class PayType(str, Enum):
    FIXED = "FIXED"
    HOURLY = "HOURLY"


class SubscriptionType(str, Enum):
    MONTHLY = "MONTHLY"
    ANNUAL = "ANNUAL"


class SignoffStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DISPUTED = "DISPUTED"
