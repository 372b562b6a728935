from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import User, Subscription
from ..auth.security import get_current_user, require_capabilities
from ..schemas.subscriptions import SubscriptionCreate, SubscriptionOut, MySubscriptionResponse
from ..services import subscriptions as subscription_service
from ..services.permissions import Capability


router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


def _out(subscription: Subscription) -> SubscriptionOut:
    return SubscriptionOut(
        id=subscription.id,
        user_id=subscription.user_id,
        type=subscription.type,
        start_date=subscription.start_date,
        end_date=subscription.end_date,
        active=subscription.active,
        is_active=subscription_service.is_subscription_active(subscription),
    )


@router.get("/me", response_model=MySubscriptionResponse)
def my_subscription(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    subscription = subscription_service.get_subscription(db, user.id)
    if subscription is None:
        return MySubscriptionResponse(has_subscription=False)
    return MySubscriptionResponse(has_subscription=True, subscription=_out(subscription))


@router.post("", response_model=SubscriptionOut, status_code=201)
def create_subscription(
    payload: SubscriptionCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_capabilities(Capability.SUBSCRIBE)),
):
    return _out(subscription_service.create_or_renew(db, user, payload.type))


@router.delete("")
def cancel_subscription(db: Session = Depends(get_db), user: User = Depends(require_capabilities(Capability.SUBSCRIBE))):
    subscription_service.cancel(db, user)
    return {"message": "Subscription cancelled"}
