"""
Geographic contractor matching.
Uses Haversine formula to calculate distance between points.
"""
import math
from dataclasses import dataclass, field
from typing import Optional, List, Sequence

from sqlalchemy.orm import Session, joinedload

from ..config import settings
from ..errors import InvalidLocation, ValidationFailed
from ..models.enums import Role, UserStatus
from ..models.models import User, ContractorProfile

EARTH_RADIUS_KM = 6371.0


def haversine_distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great circle distance between two points on Earth.

    Returns:
        Distance in kilometres
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_phi / 2) ** 2 +
        math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


@dataclass
class Candidate:
    user_id: int
    latitude: Optional[float]
    longitude: Optional[float]
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    skills: List[str] = field(default_factory=list)
    hourly_rate: Optional[float] = None
    rating: Optional[float] = None
    is_verified: bool = False


@dataclass
class Match:
    candidate: Candidate
    distance_km: float  # unrounded

    @property
    def display_distance_km(self) -> float:
        return round(self.distance_km, 1)

    def to_dict(self) -> dict:
        c = self.candidate
        return {
            "id": c.user_id,
            "email": c.email,
            "first_name": c.first_name,
            "last_name": c.last_name,
            "distance_km": self.display_distance_km,
            "contractor_profile": {
                "skills": c.skills,
                "hourly_rate": c.hourly_rate,
                "rating": c.rating,
                "is_verified": c.is_verified,
            },
        }


def find_matches(
    job_latitude: Optional[float],
    job_longitude: Optional[float],
    candidates: Sequence[Candidate],
    max_distance_km: float = 100.0,
    limit: int = 50,
) -> List[Match]:
    """
    Rank candidates by distance from the job location.

    Candidates without coordinates are skipped. A candidate exactly
    max_distance_km away is a match. Ties keep input order.
    """
    if job_latitude is None or job_longitude is None:
        raise InvalidLocation("Job does not have a valid location. Please add coordinates to find matches.")
    if max_distance_km <= 0:
        raise ValidationFailed("max_distance must be positive")
    if limit < 1:
        raise ValidationFailed("limit must be at least 1")

    matches: List[Match] = []
    for candidate in candidates:
        if candidate.latitude is None or candidate.longitude is None:
            continue
        distance = haversine_distance_km(job_latitude, job_longitude, candidate.latitude, candidate.longitude)
        if distance > max_distance_km:
            continue
        matches.append(Match(candidate=candidate, distance_km=distance))

    # sorted() is stable, so equal distances keep candidate order
    matches = sorted(matches, key=lambda m: m.distance_km)
    return matches[:limit]


def load_candidates(db: Session) -> List[Candidate]:
    """Active contractors with a located profile, in user id order."""
    rows = (
        db.query(User)
        .join(ContractorProfile, ContractorProfile.user_id == User.id)
        .options(joinedload(User.contractor_profile))
        .filter(
            User.role == Role.SUBCONTRACTOR,
            User.status == UserStatus.ACTIVE,
            ContractorProfile.latitude.isnot(None),
            ContractorProfile.longitude.isnot(None),
        )
        .order_by(User.id.asc())
        .all()
    )
    candidates = []
    for user in rows:
        profile = user.contractor_profile
        candidates.append(Candidate(
            user_id=user.id,
            latitude=profile.latitude,
            longitude=profile.longitude,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            skills=list(profile.skills or []),
            hourly_rate=float(profile.hourly_rate) if profile.hourly_rate is not None else None,
            rating=profile.rating,
            is_verified=bool(profile.is_verified),
        ))
    return candidates


def match_contractors_for_job(db: Session, job, max_distance_km: Optional[float] = None, limit: Optional[int] = None) -> List[Match]:
    if max_distance_km is None:
        max_distance_km = settings.match_max_distance_km
    if limit is None:
        limit = settings.match_limit
    # Validate the job location before touching the contractor table
    if job.latitude is None or job.longitude is None:
        raise InvalidLocation("Job does not have a valid location. Please add coordinates to find matches.")
    return find_matches(job.latitude, job.longitude, load_candidates(db), max_distance_km, limit)
