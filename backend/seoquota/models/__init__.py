from seoquota.models.user import User
from seoquota.models.role import RoleAssignment
from seoquota.models.quota import PlanQuotaLimit, UserQuota
from seoquota.models.subscription import Subscription

__all__ = [
    "User", "RoleAssignment",
    "PlanQuotaLimit", "UserQuota",
    "Subscription",
]
