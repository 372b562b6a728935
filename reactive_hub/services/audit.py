"""
Audit logging service.
Append-only audit log with integrity hashing.

Entries are added to the caller's session and committed together with the
change they describe, so a rolled-back transition leaves no audit trail.
"""
import hashlib
import json
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session

from ..models.enums import Role
from ..models.models import AuditLog, User
from ..config import settings
from .time_rules import utc_now


def compute_integrity_hash(canonical_data: Dict[str, Any], secret: str) -> str:
    # Remove None values and sort keys for consistency
    canonical_data = {k: v for k, v in canonical_data.items() if v is not None}
    canonical_json = json.dumps(canonical_data, sort_keys=True, default=str)
    hash_input = f"{canonical_json}:{secret}"
    return hashlib.sha256(hash_input.encode()).hexdigest()


def to_jsonable(value: Optional[Dict]) -> Optional[Dict]:
    """JSON columns cannot store Decimal/datetime values; stringify them."""
    if value is None:
        return None
    return json.loads(json.dumps(value, default=str))


def record_audit(
    db: Session,
    entity_type: str,
    entity_id: int,
    action: str,
    actor: Optional[User] = None,
    source: str = "api",
    changes_json: Optional[Dict] = None,
    context: Optional[Dict] = None,
    integrity_secret: Optional[str] = None,
) -> AuditLog:
    """
    Stage an append-only audit entry on the session (no commit).

    Args:
        db: Database session
        entity_type: job|bid|unlock|signoff|subscription|user
        entity_id: Entity ID
        action: CREATE|BID|ASSIGN|ACCEPT_BID|QUOTE|ACCEPT_QUOTE|UNLOCK|SCHEDULE|STATUS|CANCEL|SUBMIT_COMPLETION|APPROVE|DISPUTE|RESOLVE|REGISTER|RENEW
        actor: User who performed the action (None for system)
        source: api|system|script
        changes_json: Before/after diff
        context: Additional context
        integrity_secret: Secret for integrity hash (defaults to JWT_SECRET)
    """
    timestamp_utc = utc_now()
    actor_id = actor.id if actor is not None else None
    actor_role = Role(actor.role).value if actor is not None else "system"

    if integrity_secret is None:
        integrity_secret = settings.jwt_secret

    integrity_hash = None
    if integrity_secret:
        integrity_hash = compute_integrity_hash(
            {
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action,
                "actor_id": str(actor_id) if actor_id else None,
                "actor_role": actor_role,
                "source": source,
                "timestamp_utc": timestamp_utc.isoformat(),
                "changes": changes_json,
                "context": context,
            },
            integrity_secret,
        )

    audit_log = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_id=actor_id,
        actor_role=actor_role,
        source=source,
        changes_json=to_jsonable(changes_json),
        timestamp_utc=timestamp_utc,
        context=to_jsonable(context),
        integrity_hash=integrity_hash,
    )
    db.add(audit_log)
    return audit_log


def get_audit_logs(
    db: Session,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    limit: int = 100,
    offset: int = 0
) -> list:
    query = db.query(AuditLog)

    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)

    if entity_id is not None:
        query = query.filter(AuditLog.entity_id == entity_id)

    query = query.order_by(AuditLog.timestamp_utc.desc(), AuditLog.id.desc())
    return query.limit(limit).offset(offset).all()
