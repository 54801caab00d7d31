import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, UniqueConstraint, Uuid
from seoquota.database import Base


class PlanQuotaLimit(Base):
    """Reference limits per (plan, category). Read-only at runtime."""

    __tablename__ = "user_plan_quotas"
    __table_args__ = (UniqueConstraint("plan_type", "quota_type", name="uq_plan_quota"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    plan_type = Column(String(20), nullable=False)  # free, pro, super
    quota_type = Column(String(50), nullable=False)  # dr_check, traffic_check, ...
    monthly_limit = Column(Integer, nullable=False)
    daily_limit = Column(Integer, nullable=False, default=0)  # 0 = no daily ceiling


class UserQuota(Base):
    """Usage ledger row for one (user, category)."""

    __tablename__ = "user_quotas"
    __table_args__ = (UniqueConstraint("user_id", "quota_type", name="uq_user_quota"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    quota_type = Column(String(50), nullable=False)
    plan_type = Column(String(20), nullable=False)
    monthly_used = Column(Integer, nullable=False, default=0)
    daily_used = Column(Integer, nullable=False, default=0)
    # Snapshot of the plan limits taken when the row was created or last reset.
    monthly_limit = Column(Integer, nullable=False)
    daily_limit = Column(Integer, nullable=False, default=0)
    reset_monthly_at = Column(DateTime, nullable=False)
    reset_daily_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
