import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Uuid
from seoquota.database import Base


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    external_id = Column(String(255), unique=True, nullable=False)
    plan = Column(String(20), nullable=True)  # pro, super
    status = Column(String(30), nullable=False)  # active, trialing, past_due, canceled, unpaid
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
