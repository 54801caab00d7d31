import logging
from typing import Optional, Union
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from seoquota.config import get_settings
from seoquota.database import get_db
from seoquota.middleware.auth import require_permission
from seoquota.models.user import User
from seoquota.schemas.quota import (
    QuotaCheckRequest, QuotaConsumeRequest, QuotaStatus, QuotaConsumeResult,
    UserQuotaSummary, PlanQuotaLimitResponse,
)
from seoquota.services.quota import (
    check_quota, consume_quota, get_user_quota_summary, list_plan_limits,
    InvalidQuotaType, InvalidQuotaAmount, PlanQuotaNotFound, QuotaExceeded, InsufficientQuota,
)

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/api", tags=["Quotas"])


def _error(status_code: int, message: str, code: str, **extra) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"error": message, "code": code, **extra})


def parse_user_ref(user_id: Optional[str]) -> Union[UUID, str]:
    if not user_id:
        raise _error(status.HTTP_400_BAD_REQUEST, "Missing userId", "VALIDATION_ERROR")
    if user_id == settings.GUEST_USER_ID:
        return user_id
    try:
        return UUID(user_id)
    except ValueError:
        raise _error(status.HTTP_400_BAD_REQUEST, f"Invalid userId '{user_id}'", "VALIDATION_ERROR")


def _require_quota_type(quota_type: Optional[str]) -> str:
    if not quota_type:
        raise _error(status.HTTP_400_BAD_REQUEST, "Missing quotaType", "VALIDATION_ERROR")
    return quota_type


@router.post("/quota/check", response_model=QuotaStatus)
async def check(body: QuotaCheckRequest, db: AsyncSession = Depends(get_db)):
    quota_type = _require_quota_type(body.quota_type)
    user_ref = parse_user_ref(body.user_id)
    try:
        return await check_quota(db, user_ref, quota_type)
    except InvalidQuotaType as e:
        raise _error(status.HTTP_400_BAD_REQUEST, str(e), "VALIDATION_ERROR")
    except PlanQuotaNotFound as e:
        logger.error(str(e))
        raise _error(
            status.HTTP_404_NOT_FOUND, "Plan quota not found", "PLAN_QUOTA_NOT_FOUND",
            details={"planType": e.plan_type, "quotaType": e.quota_type},
        )
    except SQLAlchemyError:
        logger.exception(f"Quota check failed for user={body.user_id} type={quota_type}")
        raise _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", "INTERNAL_ERROR")


@router.post("/quota/consume", response_model=QuotaConsumeResult)
async def consume(body: QuotaConsumeRequest, db: AsyncSession = Depends(get_db)):
    quota_type = _require_quota_type(body.quota_type)
    user_ref = parse_user_ref(body.user_id)
    try:
        return await consume_quota(db, user_ref, quota_type, body.amount)
    except (InvalidQuotaType, InvalidQuotaAmount) as e:
        raise _error(status.HTTP_400_BAD_REQUEST, str(e), "VALIDATION_ERROR")
    except PlanQuotaNotFound as e:
        logger.error(str(e))
        raise _error(
            status.HTTP_404_NOT_FOUND, "Plan quota not found", "PLAN_QUOTA_NOT_FOUND",
            details={"planType": e.plan_type, "quotaType": e.quota_type},
        )
    except QuotaExceeded as e:
        raise _error(
            status.HTTP_429_TOO_MANY_REQUESTS, "Quota exceeded", "QUOTA_EXCEEDED",
            quotaInfo=e.status.model_dump(by_alias=True, mode="json"),
        )
    except InsufficientQuota as e:
        raise _error(
            status.HTTP_429_TOO_MANY_REQUESTS, "Insufficient quota", "INSUFFICIENT_QUOTA",
            requested=e.requested,
            available=e.available,
            quotaInfo=e.status.model_dump(by_alias=True, mode="json"),
        )
    except SQLAlchemyError:
        logger.exception(f"Quota consume failed for user={body.user_id} type={quota_type}")
        raise _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", "INTERNAL_ERROR")


@router.get("/user/quota", response_model=UserQuotaSummary)
async def user_quota(user_id: Optional[str] = Query(None, alias="userId"), db: AsyncSession = Depends(get_db)):
    user_ref = parse_user_ref(user_id)
    try:
        return await get_user_quota_summary(db, user_ref)
    except PlanQuotaNotFound as e:
        logger.error(str(e))
        raise _error(
            status.HTTP_404_NOT_FOUND, "Plan quota not found", "PLAN_QUOTA_NOT_FOUND",
            details={"planType": e.plan_type, "quotaType": e.quota_type},
        )
    except SQLAlchemyError:
        logger.exception(f"Quota summary failed for user={user_id}")
        raise _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", "INTERNAL_ERROR")


@router.get("/quota/plans", response_model=list[PlanQuotaLimitResponse])
async def plan_limits(
    current_user: User = Depends(require_permission("quotas", "read")),
    db: AsyncSession = Depends(get_db),
):
    return await list_plan_limits(db)
