from datetime import datetime, timedelta

from seoquota.models.role import ROLE_SUPER
from seoquota.models.subscription import Subscription
from seoquota.schemas.billing import BillingEvent
from seoquota.services.billing import handle_event, get_active_subscription, list_subscriptions

BILLING_HEADERS = {"X-Billing-Token": "test-billing-token"}


async def _add_subscription(db, user_id, external_id, status, created_at, plan="pro", period_end=None):
    subscription = Subscription(
        user_id=user_id,
        external_id=external_id,
        plan=plan,
        status=status,
        current_period_end=period_end,
        created_at=created_at,
    )
    db.add(subscription)
    await db.commit()
    return subscription


async def test_active_subscription_skips_lapsed_and_expired(db, user_id):
    now = datetime.utcnow()
    await _add_subscription(db, user_id, "sub_old", "canceled", now - timedelta(days=90))
    await _add_subscription(
        db, user_id, "sub_expired", "active", now - timedelta(days=60), period_end=now - timedelta(days=1)
    )
    await _add_subscription(db, user_id, "sub_failed", "past_due", now - timedelta(days=1))

    assert await get_active_subscription(db, user_id) is None

    current = await _add_subscription(
        db, user_id, "sub_trial", "trialing", now - timedelta(days=30), period_end=now + timedelta(days=5)
    )
    active = await get_active_subscription(db, user_id)
    assert active.id == current.id


async def test_history_is_newest_first(db, user_id):
    now = datetime.utcnow()
    await _add_subscription(db, user_id, "sub_a", "canceled", now - timedelta(days=40))
    await _add_subscription(db, user_id, "sub_c", "active", now - timedelta(days=1))
    await _add_subscription(db, user_id, "sub_b", "canceled", now - timedelta(days=20))

    history = await list_subscriptions(db, user_id)
    assert [s.external_id for s in history] == ["sub_c", "sub_b", "sub_a"]


async def test_status_for_user_without_subscription(client, user_id):
    response = await client.get("/api/user/subscription", params={"userId": str(user_id)})
    assert response.status_code == 200
    data = response.json()
    assert data["userId"] == str(user_id)
    assert data["currentRole"] == "free"
    assert data["hasActiveSubscription"] is False
    assert data["subscription"] is None
    assert data["history"] == []


async def test_status_after_checkout(client, db, user_id):
    await handle_event(db, BillingEvent(type="checkout.session.completed", data={"object": {
        "subscription": "sub_live",
        "metadata": {"user_id": str(user_id), "plan": "super"},
    }}))

    response = await client.get("/api/user/subscription", params={"userId": str(user_id)})
    data = response.json()
    assert data["currentRole"] == ROLE_SUPER
    assert data["hasActiveSubscription"] is True
    assert data["subscription"]["externalId"] == "sub_live"
    assert data["subscription"]["plan"] == "super"
    assert data["subscription"]["planName"] == "Super"
    assert data["subscription"]["status"] == "active"
    assert len(data["history"]) == 1


async def test_cancelled_subscription_stays_in_history(client, user_id):
    checkout = {
        "type": "checkout.session.completed",
        "data": {"object": {"subscription": "sub_gone", "metadata": {"user_id": str(user_id), "plan": "pro"}}},
    }
    deleted = {"type": "customer.subscription.deleted", "data": {"object": {"id": "sub_gone"}}}
    for event in (checkout, deleted):
        response = await client.post("/api/billing/events", json=event, headers=BILLING_HEADERS)
        assert response.status_code == 200

    response = await client.get("/api/user/subscription", params={"userId": str(user_id)})
    data = response.json()
    assert data["currentRole"] == "free"
    assert data["hasActiveSubscription"] is False
    assert [s["status"] for s in data["history"]] == ["canceled"]


async def test_status_requires_valid_user_id(client):
    missing = await client.get("/api/user/subscription")
    assert missing.status_code == 400
    assert missing.json()["detail"]["code"] == "VALIDATION_ERROR"

    invalid = await client.get("/api/user/subscription", params={"userId": "guest"})
    assert invalid.status_code == 400
