from pydantic import BaseModel
from typing import Any, Dict


class BillingEventData(BaseModel):
    object: Dict[str, Any] = {}


class BillingEvent(BaseModel):
    id: str | None = None
    type: str
    data: BillingEventData = BillingEventData()
