from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from seoquota.database import get_db
from seoquota.schemas.auth import LoginRequest, TokenResponse, RefreshRequest
from seoquota.schemas.role import RoleAssignmentResponse, UserRoleResponse
from seoquota.services.auth import (
    authenticate_user, create_access_token, create_refresh_token, token_subject, get_user_by_id, REFRESH,
)
from seoquota.middleware.auth import get_current_user
from seoquota.services.rbac import get_role_permissions
from seoquota.services.roles import get_active_assignment, canonical_role, role_flags
from seoquota.models.role import ROLE_FREE
from seoquota.models.user import User

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


@router.post("/login", response_model=TokenResponse)
async def login(request: LoginRequest, db: AsyncSession = Depends(get_db)):
    user = await authenticate_user(db, request.email, request.password)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive")
    access_token = create_access_token(user.id)
    refresh_token = create_refresh_token(user.id)
    return TokenResponse(access_token=access_token, refresh_token=refresh_token)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(request: RefreshRequest, db: AsyncSession = Depends(get_db)):
    user_id = token_subject(request.refresh_token, REFRESH)
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token")
    user = await get_user_by_id(db, user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")
    access_token = create_access_token(user.id)
    refresh_token = create_refresh_token(user.id)
    return TokenResponse(access_token=access_token, refresh_token=refresh_token)


async def _role_response(db: AsyncSession, user_id: UUID) -> UserRoleResponse:
    assignment = await get_active_assignment(db, user_id)
    role = (canonical_role(assignment.role) if assignment else None) or ROLE_FREE
    return UserRoleResponse(
        user_id=str(user_id),
        role=role,
        role_details=RoleAssignmentResponse.model_validate(assignment) if assignment else None,
        **role_flags(role),
    )


@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    role = await _role_response(db, current_user.id)
    return {
        "id": str(current_user.id),
        "email": current_user.email,
        "role": role.role,
        "isAdmin": role.is_admin,
        "roleLevel": role.role_level,
        "permissions": get_role_permissions(role.role),
    }


@router.get("/user-role", response_model=UserRoleResponse)
async def get_user_role(user_id: Optional[str] = Query(None, alias="userId"), db: AsyncSession = Depends(get_db)):
    if not user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required query parameter: userId")
    try:
        parsed = UUID(user_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid userId '{user_id}'")
    return await _role_response(db, parsed)
