import logging
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from seoquota.database import get_db
from seoquota.models.subscription import Subscription
from seoquota.schemas.subscription import SubscriptionResponse, SubscriptionStatusResponse
from seoquota.services.billing import get_active_subscription, list_subscriptions
from seoquota.services.plans import PLAN_DISPLAY_NAMES
from seoquota.services.roles import resolve_role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/user", tags=["Subscriptions"])


def _subscription_response(subscription: Subscription) -> SubscriptionResponse:
    return SubscriptionResponse(
        id=subscription.id,
        external_id=subscription.external_id,
        plan=subscription.plan,
        plan_name=PLAN_DISPLAY_NAMES.get(subscription.plan, "Unknown Plan"),
        status=subscription.status,
        current_period_start=subscription.current_period_start,
        current_period_end=subscription.current_period_end,
        created_at=subscription.created_at,
        updated_at=subscription.updated_at,
    )


@router.get("/subscription", response_model=SubscriptionStatusResponse)
async def subscription_status(user_id: Optional[str] = Query(None, alias="userId"), db: AsyncSession = Depends(get_db)):
    """Current role, the subscription backing it (if any) and the full history, newest first."""
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Missing userId", "code": "VALIDATION_ERROR"},
        )
    try:
        parsed = UUID(user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": f"Invalid userId '{user_id}'", "code": "VALIDATION_ERROR"},
        )

    role = await resolve_role(db, parsed)
    try:
        active = await get_active_subscription(db, parsed)
        history = await list_subscriptions(db, parsed)
    except SQLAlchemyError:
        logger.exception(f"Subscription lookup failed for user={user_id}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to fetch subscription data", "code": "INTERNAL_ERROR"},
        )

    return SubscriptionStatusResponse(
        user_id=str(parsed),
        current_role=role,
        has_active_subscription=active is not None,
        subscription=_subscription_response(active) if active else None,
        history=[_subscription_response(s) for s in history],
    )
