"""
Per-user quota accounting.

Every check resolves the caller's role, maps it to a plan, loads (or lazily
creates) the ledger row for the requested category and rolls the daily and
monthly windows over before judging usability. Consumption re-runs the check
and then increments both counters with a single conditional UPDATE so that
concurrent requests cannot push a row past its limits.

Role resolution fails open (``free``); every other storage error propagates.
"""

import logging
from datetime import datetime
from typing import List, Optional, Union
from uuid import UUID
from sqlalchemy import select, update, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from seoquota.config import get_settings
from seoquota.models.quota import PlanQuotaLimit, UserQuota
from seoquota.models.role import ROLE_ADMIN
from seoquota.schemas.quota import (
    QuotaStatus, QuotaConsumeResult, CategoryUsage, UserQuotaSummary,
)
from seoquota.services import plans
from seoquota.services.roles import resolve_role

logger = logging.getLogger(__name__)
settings = get_settings()

UserRef = Union[UUID, str]


class QuotaError(Exception):
    """Base class for quota rejections and configuration defects."""


class InvalidQuotaType(QuotaError):
    def __init__(self, quota_type: Optional[str]):
        self.quota_type = quota_type
        super().__init__(
            f"Invalid quotaType '{quota_type}'. Valid types are: {', '.join(plans.QUOTA_CATEGORIES)}"
        )


class InvalidQuotaAmount(QuotaError):
    def __init__(self, amount):
        self.amount = amount
        super().__init__(f"amount must be a positive integer, got {amount!r}")


class PlanQuotaNotFound(QuotaError):
    def __init__(self, plan_type: str, quota_type: str):
        self.plan_type = plan_type
        self.quota_type = quota_type
        super().__init__(f"Plan quota not found for plan={plan_type} quota_type={quota_type}")


class QuotaExceeded(QuotaError):
    def __init__(self, status: QuotaStatus):
        self.status = status
        super().__init__("Quota exceeded")


class InsufficientQuota(QuotaError):
    def __init__(self, status: QuotaStatus, requested: int, available: int):
        self.status = status
        self.requested = requested
        self.available = available
        super().__init__(f"Insufficient quota: requested {requested}, available {available}")


def is_guest(user_id: Optional[UserRef]) -> bool:
    return isinstance(user_id, str) and user_id == settings.GUEST_USER_ID


def validate_quota_type(quota_type: Optional[str]) -> str:
    if quota_type not in plans.QUOTA_CATEGORIES:
        raise InvalidQuotaType(quota_type)
    return quota_type


def guest_status(quota_type: str, now: Optional[datetime] = None) -> QuotaStatus:
    """Guests are tracked client-side; the server only publishes their limits."""
    now = now or plans.utcnow()
    limits = plans.GUEST_QUOTAS[quota_type]
    return QuotaStatus(
        can_use=True,
        monthly_used=0,
        monthly_limit=limits.monthly,
        daily_used=0,
        daily_limit=limits.daily,
        plan_type=plans.PLAN_GUEST,
        reset_monthly_at=plans.next_monthly_reset(now),
        reset_daily_at=plans.next_daily_reset(now),
        is_guest=True,
    )


def admin_status(now: Optional[datetime] = None) -> QuotaStatus:
    now = now or plans.utcnow()
    unlimited = settings.ADMIN_UNLIMITED_QUOTA
    return QuotaStatus(
        can_use=True,
        monthly_used=0,
        monthly_limit=unlimited,
        daily_used=0,
        daily_limit=unlimited,
        plan_type=plans.PLAN_ADMIN,
        reset_monthly_at=plans.next_monthly_reset(now),
        reset_daily_at=plans.next_daily_reset(now),
        is_admin=True,
    )


def available_quota(status: QuotaStatus) -> int:
    remaining = status.remaining_monthly
    if status.remaining_daily is not None:
        remaining = min(remaining, status.remaining_daily)
    return remaining


async def get_plan_limit(db: AsyncSession, plan_type: str, quota_type: str) -> PlanQuotaLimit:
    result = await db.execute(
        select(PlanQuotaLimit).where(
            PlanQuotaLimit.plan_type == plan_type, PlanQuotaLimit.quota_type == quota_type
        )
    )
    plan_limit = result.scalar_one_or_none()
    if not plan_limit:
        raise PlanQuotaNotFound(plan_type, quota_type)
    return plan_limit


async def list_plan_limits(db: AsyncSession) -> List[PlanQuotaLimit]:
    result = await db.execute(
        select(PlanQuotaLimit).order_by(PlanQuotaLimit.plan_type, PlanQuotaLimit.quota_type)
    )
    return result.scalars().all()


async def get_ledger_row(db: AsyncSession, user_id: UUID, quota_type: str, refresh: bool = False) -> Optional[UserQuota]:
    query = select(UserQuota).where(UserQuota.user_id == user_id, UserQuota.quota_type == quota_type)
    if refresh:
        query = query.execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def list_ledger_rows(db: AsyncSession, user_id: UUID, refresh: bool = False) -> List[UserQuota]:
    query = select(UserQuota).where(UserQuota.user_id == user_id).order_by(UserQuota.quota_type)
    if refresh:
        query = query.execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalars().all()


async def _roll_over(db: AsyncSession, row: UserQuota, now: datetime) -> UserQuota:
    """
    Reset each elapsed window independently.

    Each reset is a compare-and-set on the window's reset timestamp, so a
    window already rolled (and possibly consumed from) by a concurrent request
    is left alone. Returns the row as stored afterwards.
    """
    changed = False
    if now >= row.reset_monthly_at:
        await db.execute(
            update(UserQuota)
            .where(UserQuota.id == row.id, UserQuota.reset_monthly_at == row.reset_monthly_at)
            .values(monthly_used=0, reset_monthly_at=plans.next_monthly_reset(now), updated_at=now)
            .execution_options(synchronize_session=False)
        )
        changed = True
    if now >= row.reset_daily_at:
        await db.execute(
            update(UserQuota)
            .where(UserQuota.id == row.id, UserQuota.reset_daily_at == row.reset_daily_at)
            .values(daily_used=0, reset_daily_at=plans.next_daily_reset(now), updated_at=now)
            .execution_options(synchronize_session=False)
        )
        changed = True
    if not changed:
        return row

    await db.commit()
    logger.info(f"Rolled over quota windows user={row.user_id} type={row.quota_type}")
    return await get_ledger_row(db, row.user_id, row.quota_type, refresh=True)


def _status_from_row(row: UserQuota, plan_type: str) -> QuotaStatus:
    daily_limit = row.daily_limit or 0
    can_use_monthly = row.monthly_used < row.monthly_limit
    can_use_daily = row.daily_used < daily_limit if daily_limit > 0 else True
    return QuotaStatus(
        can_use=can_use_monthly and can_use_daily,
        monthly_used=row.monthly_used,
        monthly_limit=row.monthly_limit,
        daily_used=row.daily_used,
        daily_limit=daily_limit,
        plan_type=plan_type,
        reset_monthly_at=row.reset_monthly_at,
        reset_daily_at=row.reset_daily_at,
    )


async def check_quota(db: AsyncSession, user_id: UserRef, quota_type: str) -> QuotaStatus:
    validate_quota_type(quota_type)
    now = plans.utcnow()
    if is_guest(user_id):
        return guest_status(quota_type, now)

    role = await resolve_role(db, user_id)
    if role == ROLE_ADMIN:
        return admin_status(now)
    plan_type = plans.plan_for_role(role)

    plan_limit = await get_plan_limit(db, plan_type, quota_type)

    row = await get_ledger_row(db, user_id, quota_type, refresh=True)
    if row is None:
        row = UserQuota(
            user_id=user_id,
            quota_type=quota_type,
            plan_type=plan_type,
            monthly_used=0,
            daily_used=0,
            monthly_limit=plan_limit.monthly_limit,
            daily_limit=plan_limit.daily_limit or 0,
            reset_monthly_at=plans.next_monthly_reset(now),
            reset_daily_at=plans.next_daily_reset(now),
        )
        db.add(row)
        try:
            await db.commit()
        except IntegrityError:
            # Another request created the row between our read and insert.
            await db.rollback()
            row = await get_ledger_row(db, user_id, quota_type)
            if row is None:
                raise
        else:
            logger.info(f"Created quota ledger row user={user_id} type={quota_type} plan={plan_type}")
            return QuotaStatus(
                can_use=True,
                monthly_used=0,
                monthly_limit=row.monthly_limit,
                daily_used=0,
                daily_limit=row.daily_limit,
                plan_type=plan_type,
                reset_monthly_at=row.reset_monthly_at,
                reset_daily_at=row.reset_daily_at,
            )

    row = await _roll_over(db, row, now)
    return _status_from_row(row, plan_type)


async def _increment_usage(db: AsyncSession, user_id: UUID, quota_type: str, amount: int) -> bool:
    """Add ``amount`` to both counters only while the row still has room for it."""
    stmt = (
        update(UserQuota)
        .where(
            UserQuota.user_id == user_id,
            UserQuota.quota_type == quota_type,
            UserQuota.monthly_used + amount <= UserQuota.monthly_limit,
            or_(UserQuota.daily_limit <= 0, UserQuota.daily_used + amount <= UserQuota.daily_limit),
        )
        .values(
            monthly_used=UserQuota.monthly_used + amount,
            daily_used=UserQuota.daily_used + amount,
            updated_at=plans.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.commit()
    return result.rowcount == 1


async def consume_quota(db: AsyncSession, user_id: UserRef, quota_type: str, amount: int = 1) -> QuotaConsumeResult:
    validate_quota_type(quota_type)
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 1:
        raise InvalidQuotaAmount(amount)

    if is_guest(user_id):
        return QuotaConsumeResult(
            consumed=amount,
            plan_type=plans.PLAN_GUEST,
            message="Guest quota managed locally",
            is_guest=True,
        )

    status = await check_quota(db, user_id, quota_type)

    if status.is_admin:
        unlimited = settings.ADMIN_UNLIMITED_QUOTA
        return QuotaConsumeResult(
            consumed=amount,
            monthly_used=0,
            monthly_limit=unlimited,
            daily_used=0,
            daily_limit=unlimited,
            remaining_monthly=unlimited,
            remaining_daily=unlimited,
            plan_type=plans.PLAN_ADMIN,
            is_admin=True,
        )

    if not status.can_use:
        raise QuotaExceeded(status)

    available = available_quota(status)
    if available < amount:
        raise InsufficientQuota(status, amount, available)

    if not await _increment_usage(db, user_id, quota_type, amount):
        # Lost a race with a concurrent consumer; report against fresh counts.
        status = await check_quota(db, user_id, quota_type)
        if not status.can_use:
            raise QuotaExceeded(status)
        raise InsufficientQuota(status, amount, available_quota(status))

    row = await get_ledger_row(db, user_id, quota_type, refresh=True)
    logger.info(
        f"Consumed {amount} {quota_type} for user={user_id}: "
        f"monthly {row.monthly_used}/{row.monthly_limit}, daily {row.daily_used}/{row.daily_limit}"
    )
    return QuotaConsumeResult(
        consumed=amount,
        monthly_used=row.monthly_used,
        monthly_limit=row.monthly_limit,
        daily_used=row.daily_used,
        daily_limit=row.daily_limit,
        remaining_monthly=row.monthly_limit - row.monthly_used,
        remaining_daily=row.daily_limit - row.daily_used if row.daily_limit > 0 else None,
        plan_type=status.plan_type,
    )


async def get_user_quota_summary(db: AsyncSession, user_id: UserRef) -> UserQuotaSummary:
    """Checker output for every category, shaped for dashboards."""
    quotas = {}
    reset_times = {}
    plan_type = plans.PLAN_GUEST if is_guest(user_id) else None
    for quota_type in plans.QUOTA_CATEGORIES:
        status = await check_quota(db, user_id, quota_type)
        plan_type = status.plan_type
        limit = status.monthly_limit
        used = status.monthly_used
        quotas[quota_type] = CategoryUsage(
            name=plans.CATEGORY_NAMES[quota_type],
            limit=limit,
            used=used,
            remaining=max(0, limit - used),
            unlimited=status.is_admin,
            percentage=round(used * 100.0 / limit, 2) if limit else 0.0,
            daily_limit=status.daily_limit,
            daily_used=status.daily_used,
        )
        reset_times["monthly"] = status.reset_monthly_at
        reset_times["daily"] = min(reset_times.get("daily", status.reset_daily_at), status.reset_daily_at)

    return UserQuotaSummary(
        user_id=str(user_id),
        plan_type=plan_type,
        plan_display_name=plans.PLAN_DISPLAY_NAMES.get(plan_type, "Free"),
        quotas=quotas,
        reset_times=reset_times,
        last_updated=plans.utcnow(),
    )


async def seed_plan_limits(db: AsyncSession) -> int:
    """Insert the default plan table when ``user_plan_quotas`` is empty."""
    existing = await db.execute(select(PlanQuotaLimit.id).limit(1))
    if existing.first():
        return 0
    count = 0
    for plan_type, categories in plans.PLAN_QUOTAS.items():
        for quota_type, limits in categories.items():
            db.add(PlanQuotaLimit(
                plan_type=plan_type,
                quota_type=quota_type,
                monthly_limit=limits.monthly,
                daily_limit=limits.daily,
            ))
            count += 1
    await db.commit()
    logger.info(f"Seeded {count} plan quota limits")
    return count
