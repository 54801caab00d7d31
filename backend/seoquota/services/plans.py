"""
Static plan data: quota categories, role -> plan mapping, guest limits and the
per-plan allotments used for seeding and for plan-change resets.
"""

import calendar
from datetime import datetime, timedelta
from typing import Dict, NamedTuple

from seoquota.models.role import ROLE_FREE, ROLE_USER, ROLE_PRO, ROLE_SUPER, ROLE_ADMIN

DR_CHECK = "dr_check"
TRAFFIC_CHECK = "traffic_check"
BACKLINK_CHECK = "backlink_check"
BACKLINK_VIEW = "backlink_view"

QUOTA_CATEGORIES = (DR_CHECK, TRAFFIC_CHECK, BACKLINK_CHECK, BACKLINK_VIEW)

CATEGORY_NAMES = {
    DR_CHECK: "DR Check",
    TRAFFIC_CHECK: "Traffic Check",
    BACKLINK_CHECK: "Backlink Check",
    BACKLINK_VIEW: "Backlink View",
}

PLAN_FREE = "free"
PLAN_PRO = "pro"
PLAN_SUPER = "super"
PLAN_TYPES = (PLAN_FREE, PLAN_PRO, PLAN_SUPER)

# Pseudo plan types reported for callers that never touch the ledger.
PLAN_GUEST = "guest"
PLAN_ADMIN = "admin"

ROLE_TO_PLAN = {
    ROLE_FREE: PLAN_FREE,
    ROLE_USER: PLAN_PRO,
    ROLE_PRO: PLAN_PRO,
    ROLE_SUPER: PLAN_SUPER,
    ROLE_ADMIN: PLAN_SUPER,
}

# Role granted when a paid plan becomes active.
PLAN_TO_ROLE = {
    PLAN_FREE: ROLE_FREE,
    PLAN_PRO: ROLE_PRO,
    PLAN_SUPER: ROLE_SUPER,
}

PLAN_DISPLAY_NAMES = {
    ROLE_FREE: "Free",
    ROLE_USER: "User",
    ROLE_PRO: "Pro",
    PLAN_PRO: "Pro",
    ROLE_SUPER: "Super",
    ROLE_ADMIN: "Admin",
    PLAN_GUEST: "Guest",
}


class Limits(NamedTuple):
    monthly: int
    daily: int  # 0 means no daily ceiling


GUEST_QUOTAS: Dict[str, Limits] = {
    DR_CHECK: Limits(5, 2),
    TRAFFIC_CHECK: Limits(5, 2),
    BACKLINK_CHECK: Limits(3, 1),
    BACKLINK_VIEW: Limits(10, 5),
}

PLAN_QUOTAS: Dict[str, Dict[str, Limits]] = {
    PLAN_FREE: {
        DR_CHECK: Limits(10, 10),
        TRAFFIC_CHECK: Limits(10, 10),
        BACKLINK_CHECK: Limits(10, 10),
        BACKLINK_VIEW: Limits(50, 50),
    },
    PLAN_PRO: {
        DR_CHECK: Limits(1000, 0),
        TRAFFIC_CHECK: Limits(1000, 0),
        BACKLINK_CHECK: Limits(1000, 0),
        BACKLINK_VIEW: Limits(200, 0),
    },
    PLAN_SUPER: {
        DR_CHECK: Limits(5000, 0),
        TRAFFIC_CHECK: Limits(5000, 0),
        BACKLINK_CHECK: Limits(5000, 0),
        BACKLINK_VIEW: Limits(200, 0),
    },
}


def plan_for_role(role: str) -> str:
    return ROLE_TO_PLAN.get(role, PLAN_FREE)


def normalize_plan(plan: str | None) -> str:
    """Billing metadata may carry any casing; unknown plans fall back to free."""
    plan = (plan or "").strip().lower()
    return plan if plan in PLAN_TYPES else PLAN_FREE


def utcnow() -> datetime:
    return datetime.utcnow()


def next_monthly_reset(now: datetime) -> datetime:
    """Midnight UTC on the first day of the month after ``now``."""
    if now.month == 12:
        return datetime(now.year + 1, 1, 1)
    return datetime(now.year, now.month + 1, 1)


def next_daily_reset(now: datetime) -> datetime:
    return now + timedelta(hours=24)


def add_one_month(now: datetime) -> datetime:
    """Same day-of-month one calendar month later, clamped to the month's end."""
    year = now.year + (1 if now.month == 12 else 0)
    month = 1 if now.month == 12 else now.month + 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)
