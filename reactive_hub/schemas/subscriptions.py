from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from ..models.enums import SubscriptionType


class SubscriptionCreate(BaseModel):
    type: SubscriptionType = SubscriptionType.MONTHLY


class SubscriptionOut(BaseModel):
    id: int
    user_id: int
    type: SubscriptionType
    start_date: datetime
    end_date: datetime
    active: bool
    is_active: bool = False


class MySubscriptionResponse(BaseModel):
    has_subscription: bool
    subscription: Optional[SubscriptionOut] = None
