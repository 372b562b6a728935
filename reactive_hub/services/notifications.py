"""
Outreach intents for the job workflow.

Nothing is delivered from here: every intent is recorded as a Notification
row and logged. When COMMS_LOG_DIR is set the rendered email/SMS is also
written as a JSON file, one file per message. Files are staged on the session
and only written once the transaction commits; a rollback discards them.
"""
import json
import os
from typing import Optional, Dict, Any, List

import structlog
from slugify import slugify
from sqlalchemy import event
from sqlalchemy.orm import Session

from ..config import settings
from ..models.enums import Role, UserStatus
from ..models.models import Notification, User
from .time_rules import utc_now
from .audit import to_jsonable


logger = structlog.get_logger(__name__)

PENDING_COMMS_KEY = "pending_comms_files"

TEMPLATES = {
    "quote_created": "A quote is ready for your job \"{job_title}\"",
    "bid_accepted": "Your bid on \"{job_title}\" was accepted",
    "job_assigned": "You have been assigned to \"{job_title}\"",
    "job_scheduled": "\"{job_title}\" has been scheduled",
    "job_cancelled": "\"{job_title}\" has been cancelled",
    "completion_submitted": "\"{job_title}\" is ready for your sign-off",
    "signoff_approved": "\"{job_title}\" has been signed off",
    "signoff_disputed": "A dispute was raised on \"{job_title}\"",
    "dispute_resolved": "The dispute on \"{job_title}\" has been resolved",
}


def channel_enabled(channel: str) -> bool:
    if channel == "email":
        return settings.enable_email
    if channel == "sms":
        return settings.enable_sms
    return False


def _timestamp_slug() -> str:
    return utc_now().strftime("%Y-%m-%d_%H-%M-%S")


def stage_comms_file(db: Session, channel: str, to: str, subject: str, body: str, metadata: Dict[str, Any]) -> Optional[str]:
    """Queue an outgoing message for COMMS_LOG_DIR/<channel>/ and return its path."""
    if not settings.comms_log_dir:
        return None
    directory = os.path.join(settings.comms_log_dir, channel)
    suffix = slugify(subject, max_length=50) if channel == "email" else "".join(c for c in to if c.isdigit())[-10:]
    path = os.path.join(directory, f"{_timestamp_slug()}_{suffix or 'message'}.json")
    entry = {
        "type": channel,
        "timestamp": utc_now().isoformat(),
        "to": to,
        "subject": subject,
        "body": body,
        "metadata": to_jsonable(metadata) or {},
    }
    db.info.setdefault(PENDING_COMMS_KEY, []).append((path, entry))
    return path


@event.listens_for(Session, "after_commit")
def _write_pending_comms(session: Session) -> None:
    for path, entry in session.info.pop(PENDING_COMMS_KEY, []):
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(entry, fh, indent=2)


@event.listens_for(Session, "after_rollback")
def _discard_pending_comms(session: Session) -> None:
    dropped = session.info.pop(PENDING_COMMS_KEY, [])
    if dropped:
        logger.info("comms_files_discarded", count=len(dropped))


def create_notification(
    db: Session,
    user: User,
    channel: str,
    template_key: str,
    payload: Optional[Dict[str, Any]] = None,
) -> Notification:
    """
    Record a single notification intent (no commit).

    Skipped when the channel is disabled globally or the user has no
    address for it.
    """
    payload = payload or {}
    address = user.email if channel == "email" else user.phone
    subject = TEMPLATES.get(template_key, template_key).format(job_title=payload.get("job_title", ""))

    status = "logged"
    log_path = None
    if not channel_enabled(channel) or not address:
        status = "skipped"
    else:
        log_path = stage_comms_file(db, channel, address, subject, subject, payload)

    notification = Notification(
        user_id=user.id,
        channel=channel,
        template_key=template_key,
        payload_json=to_jsonable(payload),
        status=status,
        log_path=log_path,
    )
    db.add(notification)
    logger.info("notification_intent", user_id=user.id, channel=channel, template=template_key, status=status)
    return notification


def notify_user(db: Session, user: Optional[User], template_key: str, payload: Optional[Dict[str, Any]] = None) -> List[Notification]:
    if user is None:
        return []
    return [
        create_notification(db, user, "email", template_key, payload),
        create_notification(db, user, "sms", template_key, payload),
    ]


def notify_admins(db: Session, template_key: str, payload: Optional[Dict[str, Any]] = None) -> List[Notification]:
    admins = db.query(User).filter(User.role == Role.ADMIN, User.status == UserStatus.ACTIVE).all()
    created: List[Notification] = []
    for admin in admins:
        created.append(create_notification(db, admin, "email", template_key, payload))
    return created


def job_payload(job, **extra) -> Dict[str, Any]:
    payload = {"job_id": job.id, "job_title": job.title, "job_location": job.location}
    payload.update(extra)
    return payload
