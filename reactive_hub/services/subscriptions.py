"""
Contractor subscriptions. One row per user; renewing replaces the dates.
Payment capture is not implemented.
"""
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from ..errors import NotFound
from ..models.enums import SubscriptionType
from ..models.models import Subscription, User
from .audit import record_audit
from .job_state import transaction
from .time_rules import utc_now, add_months


logger = structlog.get_logger(__name__)


def is_subscription_active(subscription: Optional[Subscription], now: Optional[datetime] = None) -> bool:
    if subscription is None:
        return False
    now = now or utc_now()
    return bool(subscription.active) and subscription.end_date > now


def get_subscription(db: Session, user_id: int) -> Optional[Subscription]:
    return db.query(Subscription).filter(Subscription.user_id == user_id).first()


def has_active_subscription(db: Session, user_id: int, now: Optional[datetime] = None) -> bool:
    return is_subscription_active(get_subscription(db, user_id), now)


def subscription_end_date(start: datetime, sub_type: SubscriptionType) -> datetime:
    if sub_type == SubscriptionType.ANNUAL:
        return add_months(start, 12)
    return add_months(start, 1)


def create_or_renew(db: Session, user: User, sub_type: SubscriptionType) -> Subscription:
    now = utc_now()
    end_date = subscription_end_date(now, sub_type)
    subscription = get_subscription(db, user.id)
    with transaction(db, "Subscription was changed concurrently, please retry"):
        if subscription is None:
            subscription = Subscription(user_id=user.id, type=sub_type, start_date=now, end_date=end_date, active=True)
            db.add(subscription)
            action = "CREATE"
        else:
            subscription.type = sub_type
            subscription.start_date = now
            subscription.end_date = end_date
            subscription.active = True
            action = "RENEW"
        db.flush()
        record_audit(db, "subscription", subscription.id, action, actor=user, context={"type": sub_type.value, "end_date": end_date.isoformat()})
    logger.info("subscription_saved", user_id=user.id, type=sub_type.value, action=action)
    return subscription


def cancel(db: Session, user: User) -> Subscription:
    subscription = get_subscription(db, user.id)
    if subscription is None:
        raise NotFound("No subscription found")
    with transaction(db):
        subscription.active = False
        record_audit(db, "subscription", subscription.id, "CANCEL", actor=user)
    logger.info("subscription_cancelled", user_id=user.id)
    return subscription
