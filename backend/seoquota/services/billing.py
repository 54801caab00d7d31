"""
Subscription lifecycle handling.

Events arrive already verified by the payment provider integration. Each
lifecycle transition that changes what a user has paid for rewrites the
user's role and resets every ledger row to the plan's fresh allotment.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession
from seoquota.models.quota import UserQuota
from seoquota.models.subscription import Subscription
from seoquota.schemas.billing import BillingEvent
from seoquota.services import plans
from seoquota.services.quota import list_ledger_rows
from seoquota.services.roles import set_user_role

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = {"active", "trialing"}
LAPSED_STATUSES = {"canceled", "unpaid", "past_due"}


async def reset_quotas_for_plan(db: AsyncSession, user_id: UUID, plan: str) -> None:
    """
    Overwrite every ledger row of ``user_id`` with ``plan``'s allotment.

    Usage drops to zero, limits are replaced and the monthly window restarts
    one calendar month from now. Missing rows are created.
    """
    plan = plans.normalize_plan(plan)
    now = plans.utcnow()
    reset_monthly_at = plans.add_one_month(now)
    reset_daily_at = plans.next_daily_reset(now)

    rows = {row.quota_type: row for row in await list_ledger_rows(db, user_id, refresh=True)}
    for quota_type, limits in plans.PLAN_QUOTAS[plan].items():
        row = rows.get(quota_type)
        if row is None:
            row = UserQuota(user_id=user_id, quota_type=quota_type)
            db.add(row)
        row.plan_type = plan
        row.monthly_used = 0
        row.daily_used = 0
        row.monthly_limit = limits.monthly
        row.daily_limit = limits.daily
        row.reset_monthly_at = reset_monthly_at
        row.reset_daily_at = reset_daily_at
    await db.commit()
    logger.info(f"Reset quotas for user {user_id} to plan {plan}")


def _parse_user_id(value: Any) -> Optional[UUID]:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        logger.error(f"Invalid user_id in billing metadata: {value}")
        return None


def _timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.utcfromtimestamp(int(value))


async def _get_subscription(db: AsyncSession, external_id: Optional[str]) -> Optional[Subscription]:
    if not external_id:
        return None
    result = await db.execute(select(Subscription).where(Subscription.external_id == external_id))
    return result.scalar_one_or_none()


async def get_active_subscription(db: AsyncSession, user_id: UUID) -> Optional[Subscription]:
    """Newest active or trialing subscription whose period has not ended."""
    now = plans.utcnow()
    result = await db.execute(
        select(Subscription)
        .where(
            Subscription.user_id == user_id,
            Subscription.status.in_(sorted(ACTIVE_STATUSES)),
            or_(Subscription.current_period_end.is_(None), Subscription.current_period_end >= now),
        )
        .order_by(Subscription.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_subscriptions(db: AsyncSession, user_id: UUID) -> List[Subscription]:
    result = await db.execute(
        select(Subscription)
        .where(Subscription.user_id == user_id)
        .order_by(Subscription.created_at.desc())
    )
    return result.scalars().all()


async def _apply_plan(db: AsyncSession, user_id: UUID, plan: str) -> None:
    plan = plans.normalize_plan(plan)
    await set_user_role(db, user_id, plans.PLAN_TO_ROLE[plan], reason=f"billing:{plan}")
    await reset_quotas_for_plan(db, user_id, plan)


async def handle_checkout_completed(db: AsyncSession, obj: Dict[str, Any]) -> None:
    metadata = obj.get("metadata") or {}
    user_id = _parse_user_id(metadata.get("user_id"))
    if not user_id:
        logger.error(f"No user_id in checkout session metadata: {obj.get('id')}")
        return
    plan = plans.normalize_plan(metadata.get("plan"))

    external_id = obj.get("subscription")
    if external_id:
        subscription = await _get_subscription(db, external_id)
        if subscription is None:
            subscription = Subscription(external_id=external_id, user_id=user_id)
            db.add(subscription)
        subscription.user_id = user_id
        subscription.plan = plan
        subscription.status = "active"
        subscription.current_period_start = _timestamp(obj.get("current_period_start"))
        subscription.current_period_end = _timestamp(obj.get("current_period_end"))
        await db.commit()

    await _apply_plan(db, user_id, plan)
    logger.info(f"Processed checkout for user {user_id}, plan: {plan}")


async def handle_payment_succeeded(db: AsyncSession, obj: Dict[str, Any]) -> None:
    subscription = await _get_subscription(db, obj.get("subscription"))
    if subscription is None:
        logger.warning(f"Payment for unknown subscription {obj.get('subscription')}")
        return
    subscription.status = "active"
    if obj.get("period_end"):
        subscription.current_period_end = _timestamp(obj["period_end"])
    await db.commit()

    # Renewal: a fresh allotment for the paid plan.
    await reset_quotas_for_plan(db, subscription.user_id, subscription.plan)
    logger.info(f"Processed renewal for user {subscription.user_id}")


async def handle_subscription_updated(db: AsyncSession, obj: Dict[str, Any]) -> None:
    metadata = obj.get("metadata") or {}
    subscription = await _get_subscription(db, obj.get("id"))
    user_id = _parse_user_id(metadata.get("user_id")) or (subscription.user_id if subscription else None)
    if not user_id:
        logger.error(f"No user_id for subscription {obj.get('id')}")
        return

    status = obj.get("status", "")
    plan = metadata.get("plan") or (subscription.plan if subscription else None)
    if subscription is not None:
        subscription.status = status
        if plan:
            subscription.plan = plans.normalize_plan(plan)
        if obj.get("current_period_start"):
            subscription.current_period_start = _timestamp(obj["current_period_start"])
        if obj.get("current_period_end"):
            subscription.current_period_end = _timestamp(obj["current_period_end"])
        await db.commit()

    if status in LAPSED_STATUSES:
        await _apply_plan(db, user_id, plans.PLAN_FREE)
    elif status in ACTIVE_STATUSES and plan:
        await _apply_plan(db, user_id, plan)
    logger.info(f"Subscription {obj.get('id')} for user {user_id} is now {status}")


async def handle_subscription_deleted(db: AsyncSession, obj: Dict[str, Any]) -> None:
    metadata = obj.get("metadata") or {}
    subscription = await _get_subscription(db, obj.get("id"))
    user_id = _parse_user_id(metadata.get("user_id")) or (subscription.user_id if subscription else None)
    if subscription is not None:
        subscription.status = "canceled"
        await db.commit()
    if not user_id:
        logger.error(f"No user_id for deleted subscription {obj.get('id')}")
        return
    await _apply_plan(db, user_id, plans.PLAN_FREE)
    logger.info(f"Downgraded user {user_id} to free plan")


async def handle_payment_failed(db: AsyncSession, obj: Dict[str, Any]) -> None:
    subscription = await _get_subscription(db, obj.get("subscription"))
    if subscription is None:
        logger.warning(f"Failed payment for unknown subscription {obj.get('subscription')}")
        return
    subscription.status = "past_due"
    await db.commit()
    logger.info(f"Payment failed for user {subscription.user_id}")


EVENT_HANDLERS = {
    "checkout.session.completed": handle_checkout_completed,
    "invoice.payment_succeeded": handle_payment_succeeded,
    "customer.subscription.updated": handle_subscription_updated,
    "customer.subscription.deleted": handle_subscription_deleted,
    "invoice.payment_failed": handle_payment_failed,
}


async def handle_event(db: AsyncSession, event: BillingEvent) -> bool:
    """Dispatch ``event``. Returns False for event types we do not act on."""
    handler = EVENT_HANDLERS.get(event.type)
    if handler is None:
        logger.info(f"Unhandled billing event type: {event.type}")
        return False
    await handler(db, event.data.object)
    return True
