import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import Conflict, ValidationFailed
from ..models.enums import Role, CustomerType, UserStatus
from ..models.models import User, ContractorProfile, CustomerProfile
from ..schemas.auth import (
    RegisterRequest,
    RegisterResponse,
    LoginRequest,
    TokenResponse,
    MeResponse,
)
from ..services.audit import record_audit
from ..services.job_state import transaction
from ..services.time_rules import utc_now
from .security import (
    get_password_hash,
    verify_password,
    create_access_token,
    get_current_user,
)


router = APIRouter(prefix="/auth", tags=["auth"])
logger = structlog.get_logger(__name__)

EMAIL_TAKEN_MESSAGE = "An account with this email already exists"


@router.post("/register", response_model=RegisterResponse, status_code=201)
def register(req: RegisterRequest, db: Session = Depends(get_db)):
    if req.role == Role.ADMIN:
        raise ValidationFailed("Admin accounts cannot be self-registered")
    skills = [s.strip() for s in req.skills if s and s.strip()]
    if req.role == Role.SUBCONTRACTOR and not skills:
        raise ValidationFailed("Contractors must list at least one skill")

    email = str(req.email).strip().lower()
    if db.query(User).filter(User.email == email).first():
        raise Conflict(EMAIL_TAKEN_MESSAGE)

    user = User(
        email=email,
        password_hash=get_password_hash(req.password),
        role=req.role,
        status=UserStatus.ACTIVE,
        first_name=req.first_name,
        last_name=req.last_name,
        phone=req.phone,
    )
    with transaction(db, EMAIL_TAKEN_MESSAGE):
        db.add(user)
        db.flush()
        if req.role == Role.SUBCONTRACTOR:
            db.add(ContractorProfile(
                user_id=user.id,
                skills=skills,
                hourly_rate=req.hourly_rate,
                latitude=req.latitude,
                longitude=req.longitude,
                bio=req.bio,
                rating=0.0,
                is_verified=False,
            ))
        elif req.role in (Role.CUST_RESIDENTIAL, Role.CUST_COMMERCIAL):
            customer_type = CustomerType.COMMERCIAL if req.role == Role.CUST_COMMERCIAL else CustomerType.RESIDENTIAL
            db.add(CustomerProfile(user_id=user.id, type=customer_type, address=req.address))
        record_audit(db, "user", user.id, "REGISTER", actor=user, context={"role": req.role.value})
    db.refresh(user)
    logger.info("user_registered", user_id=user.id, role=req.role.value)
    token = create_access_token(user.id, user.role)
    return RegisterResponse(access_token=token, user=MeResponse.model_validate(user))


@router.post("/login", response_model=TokenResponse)
def login(req: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == str(req.email).strip().lower()).first()
    if not user or not verify_password(req.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    if user.status != UserStatus.ACTIVE:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not active")
    user.last_login_at = utc_now()
    db.commit()
    return TokenResponse(access_token=create_access_token(user.id, user.role))


@router.get("/me", response_model=MeResponse)
def me(user: User = Depends(get_current_user)):
    return user
