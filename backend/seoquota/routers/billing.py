import hmac
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from seoquota.config import get_settings
from seoquota.database import get_db
from seoquota.schemas.billing import BillingEvent
from seoquota.services.billing import handle_event

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/api/billing", tags=["Billing"])


def verify_billing_token(x_billing_token: Optional[str] = Header(None)):
    if not x_billing_token or not hmac.compare_digest(
        x_billing_token.encode(), settings.BILLING_WEBHOOK_TOKEN.encode()
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid billing token")


@router.post("/events", dependencies=[Depends(verify_billing_token)])
async def billing_event(event: BillingEvent, db: AsyncSession = Depends(get_db)):
    try:
        handled = await handle_event(db, event)
    except Exception:
        logger.exception(f"Billing handler failed for event {event.type} ({event.id})")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Billing handler failed", "code": "INTERNAL_ERROR"},
        )
    return {"received": True, "handled": handled}
