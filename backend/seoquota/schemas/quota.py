from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing import Optional, Dict
from uuid import UUID
from datetime import datetime


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class QuotaCheckRequest(CamelModel):
    quota_type: Optional[str] = None
    user_id: Optional[str] = None


class QuotaConsumeRequest(CamelModel):
    quota_type: Optional[str] = None
    user_id: Optional[str] = None
    amount: int = 1


class QuotaStatus(CamelModel):
    """Snapshot returned by the quota checker."""
    can_use: bool
    monthly_used: int
    monthly_limit: int
    daily_used: int
    daily_limit: int
    plan_type: str
    reset_monthly_at: datetime
    reset_daily_at: datetime
    is_guest: bool = False
    is_admin: bool = False

    @property
    def remaining_monthly(self) -> int:
        return self.monthly_limit - self.monthly_used

    @property
    def remaining_daily(self) -> Optional[int]:
        if self.daily_limit > 0:
            return self.daily_limit - self.daily_used
        return None


class QuotaConsumeResult(CamelModel):
    success: bool = True
    consumed: int
    monthly_used: Optional[int] = None
    monthly_limit: Optional[int] = None
    daily_used: Optional[int] = None
    daily_limit: Optional[int] = None
    remaining_monthly: Optional[int] = None
    remaining_daily: Optional[int] = None
    plan_type: Optional[str] = None
    message: Optional[str] = None
    is_guest: bool = False
    is_admin: bool = False


class CategoryUsage(CamelModel):
    name: str
    limit: int
    used: int
    remaining: int
    unlimited: bool
    percentage: float
    daily_limit: int
    daily_used: int


class UserQuotaSummary(CamelModel):
    user_id: str
    plan_type: str
    plan_display_name: str
    quotas: Dict[str, CategoryUsage]
    reset_times: Dict[str, datetime]
    last_updated: datetime


class PlanQuotaLimitResponse(CamelModel):
    plan_type: str
    quota_type: str
    monthly_limit: int
    daily_limit: int


class LedgerRowResponse(CamelModel):
    user_id: UUID
    quota_type: str
    plan_type: str
    monthly_used: int
    monthly_limit: int
    daily_used: int
    daily_limit: int
    reset_monthly_at: datetime
    reset_daily_at: datetime
    updated_at: Optional[datetime] = None


class PlanResetRequest(BaseModel):
    plan: str
