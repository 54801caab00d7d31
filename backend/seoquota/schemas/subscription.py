from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing import Optional, List
from uuid import UUID
from datetime import datetime


class SubscriptionResponse(BaseModel):
    id: UUID
    external_id: str
    plan: Optional[str] = None
    plan_name: str
    status: str
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class SubscriptionStatusResponse(BaseModel):
    user_id: str
    current_role: str
    has_active_subscription: bool
    subscription: Optional[SubscriptionResponse] = None
    history: List[SubscriptionResponse] = []

    class Config:
        alias_generator = to_camel
        populate_by_name = True
