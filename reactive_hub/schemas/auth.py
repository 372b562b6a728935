from decimal import Decimal
from typing import Optional, List

from pydantic import BaseModel, EmailStr, Field

from ..models.enums import Role, CustomerType


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    role: Role
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=50)
    # Contractor profile
    skills: List[str] = []
    hourly_rate: Optional[Decimal] = Field(default=None, ge=0)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    bio: Optional[str] = Field(default=None, max_length=2000)
    # Customer profile
    address: Optional[str] = Field(default=None, max_length=500)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class ContractorProfileOut(BaseModel):
    skills: List[str] = []
    hourly_rate: Optional[float] = None
    rating: float = 0.0
    is_verified: bool = False
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    bio: Optional[str] = None

    class Config:
        from_attributes = True


class CustomerProfileOut(BaseModel):
    type: CustomerType
    address: Optional[str] = None

    class Config:
        from_attributes = True


class MeResponse(BaseModel):
    id: int
    email: EmailStr
    role: Role
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    contractor_profile: Optional[ContractorProfileOut] = None
    customer_profile: Optional[CustomerProfileOut] = None

    class Config:
        from_attributes = True


class RegisterResponse(TokenResponse):
    user: MeResponse
