from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from seoquota.database import get_db
from seoquota.models.user import User
from seoquota.schemas.user import UserCreate, UserResponse, UserListResponse
from seoquota.schemas.role import RoleChangeRequest, RoleChangeResponse
from seoquota.schemas.quota import LedgerRowResponse, PlanResetRequest
from seoquota.middleware.auth import require_permission
from seoquota.services.auth import hash_password
from seoquota.services.billing import reset_quotas_for_plan
from seoquota.services.plans import PLAN_TYPES
from seoquota.services.quota import list_ledger_rows
from seoquota.services.roles import (
    get_active_role, set_user_role, InvalidRole, RoleChangeRejected,
)

router = APIRouter(prefix="/api/admin/users", tags=["Admin"])


async def _user_response(db: AsyncSession, user: User) -> UserResponse:
    return UserResponse(
        id=user.id, email=user.email, is_active=user.is_active,
        role=await get_active_role(db, user.id),
        created_at=user.created_at, updated_at=user.updated_at,
    )


@router.get("", response_model=UserListResponse)
async def list_users(
    skip: int = 0, limit: int = 50,
    current_user: User = Depends(require_permission("users", "read")),
    db: AsyncSession = Depends(get_db),
):
    count_result = await db.execute(select(func.count(User.id)))
    total = count_result.scalar()
    result = await db.execute(select(User).offset(skip).limit(limit).order_by(User.created_at.desc()))
    users = result.scalars().all()
    return UserListResponse(users=[await _user_response(db, u) for u in users], total=total)


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    current_user: User = Depends(require_permission("users", "write")),
    db: AsyncSession = Depends(get_db),
):
    existing = await db.execute(select(User).where(User.email == user_data.email))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already exists")
    user = User(
        email=user_data.email,
        hashed_password=hash_password(user_data.password) if user_data.password else None,
        is_active=user_data.is_active,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    if user_data.role:
        try:
            await set_user_role(db, user.id, user_data.role, actor_id=current_user.id, reason="user created")
        except InvalidRole as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return await _user_response(db, user)


@router.post("/{user_id}/role", response_model=RoleChangeResponse)
async def change_role(
    user_id: UUID, body: RoleChangeRequest,
    current_user: User = Depends(require_permission("roles", "write")),
    db: AsyncSession = Depends(get_db),
):
    try:
        previous, role, changed = await set_user_role(
            db, user_id, body.role, actor_id=current_user.id, reason=body.reason,
        )
    except InvalidRole as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except RoleChangeRejected as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if not changed:
        message = "User already has the specified role"
    else:
        message = f"Role changed from {previous} to {role}"
    return RoleChangeResponse(
        user_id=user_id, previous_role=previous, role=role, no_change=not changed, message=message,
    )


@router.get("/{user_id}/quotas", response_model=list[LedgerRowResponse])
async def list_user_quotas(
    user_id: UUID,
    current_user: User = Depends(require_permission("quotas", "read")),
    db: AsyncSession = Depends(get_db),
):
    return await list_ledger_rows(db, user_id)


@router.post("/{user_id}/quotas/reset", response_model=list[LedgerRowResponse])
async def reset_user_quotas(
    user_id: UUID, body: PlanResetRequest,
    current_user: User = Depends(require_permission("quotas", "write")),
    db: AsyncSession = Depends(get_db),
):
    plan = body.plan.strip().lower()
    if plan not in PLAN_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid plan. Valid plans are: {', '.join(PLAN_TYPES)}",
        )
    await reset_quotas_for_plan(db, user_id, plan)
    return await list_ledger_rows(db, user_id)
