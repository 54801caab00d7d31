from seoquota.schemas.auth import LoginRequest, TokenResponse, RefreshRequest
from seoquota.schemas.user import UserCreate, UserResponse, UserListResponse
from seoquota.schemas.role import (
    RoleAssignmentResponse, UserRoleResponse,
    RoleChangeRequest, RoleChangeResponse,
)
from seoquota.schemas.quota import (
    QuotaCheckRequest, QuotaConsumeRequest, QuotaStatus, QuotaConsumeResult,
    CategoryUsage, UserQuotaSummary, PlanQuotaLimitResponse, LedgerRowResponse,
    PlanResetRequest,
)
from seoquota.schemas.billing import BillingEvent, BillingEventData
from seoquota.schemas.subscription import SubscriptionResponse, SubscriptionStatusResponse
