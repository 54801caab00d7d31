from pydantic import BaseModel
from typing import Optional, List
from uuid import UUID
from datetime import datetime


class UserCreate(BaseModel):
    email: str
    password: Optional[str] = None
    is_active: bool = True
    role: Optional[str] = None


class UserResponse(BaseModel):
    id: UUID
    email: str
    is_active: bool
    role: str
    created_at: datetime
    updated_at: datetime


class UserListResponse(BaseModel):
    users: List[UserResponse]
    total: int
