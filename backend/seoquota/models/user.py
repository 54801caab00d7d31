import uuid
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, Uuid
from seoquota.database import Base


class User(Base):
    """Local mirror of an identity owned by the external auth provider."""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
