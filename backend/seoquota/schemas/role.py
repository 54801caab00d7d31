from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing import Optional
from uuid import UUID
from datetime import datetime


class RoleAssignmentResponse(BaseModel):
    id: UUID
    role: str
    is_active: bool
    granted_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class UserRoleResponse(BaseModel):
    success: bool = True
    user_id: str
    role: str
    role_details: Optional[RoleAssignmentResponse] = None
    is_admin: bool
    is_super: bool
    is_pro: bool
    is_user: bool
    is_free: bool
    role_level: int

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class RoleChangeRequest(BaseModel):
    role: str
    reason: Optional[str] = None


class RoleChangeResponse(BaseModel):
    success: bool = True
    user_id: UUID
    previous_role: str
    role: str
    no_change: bool = False
    message: str

    class Config:
        alias_generator = to_camel
        populate_by_name = True
