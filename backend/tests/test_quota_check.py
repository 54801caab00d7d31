from datetime import datetime, timedelta

import pytest
from sqlalchemy import delete, update

from seoquota.models.quota import PlanQuotaLimit, UserQuota
from seoquota.models.role import ROLE_ADMIN, ROLE_PRO, ROLE_SUPER, ROLE_USER
from seoquota.services import plans
from seoquota.services.quota import (
    check_quota, consume_quota, get_ledger_row, get_user_quota_summary,
    InvalidQuotaType, PlanQuotaNotFound,
)


def freeze(monkeypatch, moment):
    monkeypatch.setattr(plans, "utcnow", lambda: moment)


async def _set_usage(db, user_id, quota_type, **values):
    await db.execute(
        update(UserQuota)
        .where(UserQuota.user_id == user_id, UserQuota.quota_type == quota_type)
        .values(**values)
    )
    await db.commit()


async def test_first_check_creates_ledger_row(db, user_id, monkeypatch):
    now = datetime(2024, 3, 15, 10, 30)
    freeze(monkeypatch, now)

    status = await check_quota(db, user_id, "dr_check")

    assert status.can_use
    assert (status.monthly_used, status.monthly_limit) == (0, 10)
    assert (status.daily_used, status.daily_limit) == (0, 10)
    assert status.plan_type == "free"
    assert status.reset_monthly_at == datetime(2024, 4, 1)
    assert status.reset_daily_at == now + timedelta(hours=24)

    row = await get_ledger_row(db, user_id, "dr_check")
    assert row is not None
    assert row.plan_type == "free"
    assert row.monthly_limit == 10


async def test_second_check_reuses_ledger_row(db, user_id):
    first = await check_quota(db, user_id, "traffic_check")
    second = await check_quota(db, user_id, "traffic_check")
    assert first.reset_monthly_at == second.reset_monthly_at
    assert second.monthly_used == 0


async def test_december_monthly_reset_rolls_into_next_year(db, user_id, monkeypatch):
    freeze(monkeypatch, datetime(2024, 12, 31, 23, 0))
    status = await check_quota(db, user_id, "dr_check")
    assert status.reset_monthly_at == datetime(2025, 1, 1)


async def test_invalid_category_is_rejected(db, user_id):
    with pytest.raises(InvalidQuotaType):
        await check_quota(db, user_id, "page_check")


async def test_guest_gets_static_limits_without_ledger(db):
    status = await check_quota(db, "guest", "backlink_check")
    assert status.is_guest
    assert status.can_use
    assert (status.monthly_limit, status.daily_limit) == (3, 1)
    assert status.plan_type == "guest"


async def test_admin_is_unlimited_and_untracked(db, user_id, grant_role):
    await grant_role(user_id, ROLE_ADMIN)
    status = await check_quota(db, user_id, "dr_check")
    assert status.is_admin
    assert status.can_use
    assert status.monthly_limit == 999999
    assert status.plan_type == "admin"
    assert await get_ledger_row(db, user_id, "dr_check") is None


@pytest.mark.parametrize("role,plan,limit", [
    (ROLE_USER, "pro", 1000),
    (ROLE_PRO, "pro", 1000),
    (ROLE_SUPER, "super", 5000),
])
async def test_paid_roles_map_to_plan_limits(db, user_id, grant_role, role, plan, limit):
    await grant_role(user_id, role)
    status = await check_quota(db, user_id, "dr_check")
    assert status.plan_type == plan
    assert status.monthly_limit == limit
    assert status.daily_limit == 0
    assert status.can_use


async def test_missing_plan_limit_raises(db, user_id, grant_role):
    await db.execute(delete(PlanQuotaLimit).where(PlanQuotaLimit.plan_type == "super"))
    await db.commit()
    await grant_role(user_id, ROLE_SUPER)

    with pytest.raises(PlanQuotaNotFound) as exc_info:
        await check_quota(db, user_id, "dr_check")
    assert exc_info.value.plan_type == "super"
    assert exc_info.value.quota_type == "dr_check"


async def test_exhausted_monthly_blocks_use(db, user_id):
    await check_quota(db, user_id, "dr_check")
    await _set_usage(db, user_id, "dr_check", monthly_used=10, daily_used=3)

    status = await check_quota(db, user_id, "dr_check")
    assert not status.can_use
    assert status.monthly_used == 10


async def test_exhausted_daily_blocks_use(db, user_id):
    await check_quota(db, user_id, "backlink_view")
    await _set_usage(db, user_id, "backlink_view", monthly_used=10, daily_used=50)

    status = await check_quota(db, user_id, "backlink_view")
    assert not status.can_use
    assert status.remaining_monthly == 40
    assert status.remaining_daily == 0


async def test_zero_daily_limit_means_no_daily_ceiling(db, user_id, grant_role):
    await grant_role(user_id, ROLE_PRO)
    await check_quota(db, user_id, "dr_check")
    await _set_usage(db, user_id, "dr_check", monthly_used=500, daily_used=500)

    status = await check_quota(db, user_id, "dr_check")
    assert status.can_use
    assert status.remaining_daily is None


async def test_daily_window_rolls_over_independently(db, user_id, monkeypatch):
    start = datetime(2024, 3, 15, 10, 0)
    freeze(monkeypatch, start)
    await check_quota(db, user_id, "dr_check")
    await _set_usage(db, user_id, "dr_check", monthly_used=7, daily_used=7)

    later = start + timedelta(hours=25)
    freeze(monkeypatch, later)
    status = await check_quota(db, user_id, "dr_check")

    assert status.daily_used == 0
    assert status.monthly_used == 7
    assert status.reset_daily_at == later + timedelta(hours=24)
    assert status.reset_monthly_at == datetime(2024, 4, 1)

    row = await get_ledger_row(db, user_id, "dr_check", refresh=True)
    assert row.daily_used == 0
    assert row.reset_daily_at == later + timedelta(hours=24)


async def test_monthly_window_rolls_over(db, user_id, monkeypatch):
    freeze(monkeypatch, datetime(2024, 3, 31, 23, 0))
    await check_quota(db, user_id, "dr_check")
    await _set_usage(db, user_id, "dr_check", monthly_used=10, daily_used=2)

    april = datetime(2024, 4, 1, 0, 5)
    freeze(monkeypatch, april)
    status = await check_quota(db, user_id, "dr_check")

    assert status.can_use
    assert status.monthly_used == 0
    assert status.reset_monthly_at == datetime(2024, 5, 1)
    # Daily window has not elapsed yet.
    assert status.daily_used == 2


async def test_check_keeps_snapshot_limits(db, user_id):
    await check_quota(db, user_id, "dr_check")
    await db.execute(
        update(PlanQuotaLimit)
        .where(PlanQuotaLimit.plan_type == "free", PlanQuotaLimit.quota_type == "dr_check")
        .values(monthly_limit=25)
    )
    await db.commit()

    status = await check_quota(db, user_id, "dr_check")
    assert status.monthly_limit == 10


async def test_summary_covers_every_category(db, user_id):
    await check_quota(db, user_id, "dr_check")
    await _set_usage(db, user_id, "dr_check", monthly_used=4, daily_used=4)

    summary = await get_user_quota_summary(db, user_id)

    assert summary.plan_type == "free"
    assert summary.plan_display_name == "Free"
    assert set(summary.quotas) == set(plans.QUOTA_CATEGORIES)
    dr = summary.quotas["dr_check"]
    assert (dr.used, dr.limit, dr.remaining) == (4, 10, 6)
    assert dr.percentage == 40.0
    assert not dr.unlimited
    assert set(summary.reset_times) == {"monthly", "daily"}


async def test_summary_for_admin_is_unlimited(db, user_id, grant_role):
    await grant_role(user_id, ROLE_ADMIN)
    summary = await get_user_quota_summary(db, user_id)
    assert summary.plan_type == "admin"
    assert all(usage.unlimited for usage in summary.quotas.values())


@pytest.mark.parametrize("role", ["free", ROLE_PRO, ROLE_SUPER])
async def test_fresh_rows_are_usable_for_every_category(db, user_id, grant_role, role):
    await grant_role(user_id, role)
    for quota_type in plans.QUOTA_CATEGORIES:
        status = await check_quota(db, user_id, quota_type)
        assert status.can_use
        assert (status.monthly_used, status.daily_used) == (0, 0)


async def test_repeated_checks_do_not_change_usage(db, user_id):
    await check_quota(db, user_id, "dr_check")
    await _set_usage(db, user_id, "dr_check", monthly_used=3, daily_used=2)

    for _ in range(3):
        status = await check_quota(db, user_id, "dr_check")
        assert (status.monthly_used, status.daily_used) == (3, 2)


async def test_consume_last_unit_then_check(db, user_id):
    await check_quota(db, user_id, "dr_check")
    await _set_usage(db, user_id, "dr_check", monthly_used=9, daily_used=0)

    await consume_quota(db, user_id, "dr_check")
    status = await check_quota(db, user_id, "dr_check")

    assert status.monthly_used == 10
    assert not status.can_use
