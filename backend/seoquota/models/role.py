import uuid
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, Index, Uuid, text
from seoquota.database import Base


ROLE_FREE = "free"
ROLE_USER = "user"
ROLE_PRO = "Pro"
ROLE_SUPER = "super"
ROLE_ADMIN = "admin"

# Ordered from least to most privileged.
ROLE_HIERARCHY = [ROLE_FREE, ROLE_USER, ROLE_PRO, ROLE_SUPER, ROLE_ADMIN]


class RoleAssignment(Base):
    __tablename__ = "user_roles"
    __table_args__ = (
        # At most one active assignment per user.
        Index(
            "uq_user_roles_active_user",
            "user_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    role = Column(String(20), nullable=False, default=ROLE_FREE)
    is_active = Column(Boolean, nullable=False, default=True)
    granted_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
