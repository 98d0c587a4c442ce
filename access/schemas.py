"""
Pydantic schemas for the access API.

Field names are snake_case; the wire format uses the camelCase aliases the
frontend reads.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class SubscriptionSnapshotResponse(BaseModel):
    """Billing standing of the caller."""

    current_plan_type: Optional[str] = Field(None, alias="currentPlanType", description="Plan identifier")
    subscription_status: Optional[str] = Field(
        None, alias="subscriptionStatus", description="Provider status: active, past_due, canceled, ..."
    )
    subscription_current_period_end: Optional[str] = Field(
        None, alias="subscriptionCurrentPeriodEnd", description="ISO-8601 end of the billing period"
    )
    token_usage_this_month: int = Field(0, alias="tokenUsageThisMonth")
    token_quota_limit: int = Field(0, alias="tokenQuotaLimit")


class SubscriptionStatusResponse(BaseModel):
    """Response model for subscription status and refresh."""

    user: SubscriptionSnapshotResponse
    has_active_subscription: bool = Field(..., alias="hasActiveSubscription")
    can_access_crm: bool = Field(..., alias="canAccessCrm")
    is_crm_pro: bool = Field(..., alias="isCrmPro", description="CRM Pro tier in good standing")
    remaining_tokens: int = Field(..., alias="remainingTokens")
    token_usage_percentage: float = Field(..., alias="tokenUsagePercentage")


class UpgradePromptResponse(BaseModel):
    title: str
    message: str
    required_plan: str = Field(..., alias="requiredPlan")
    required_plan_name: str = Field(..., alias="requiredPlanName")
    current_plan: str = Field(..., alias="currentPlan", description="Badge text, e.g. FREE")
    status_notice: Optional[str] = Field(None, alias="statusNotice")
    show_manage_subscription: bool = Field(False, alias="showManageSubscription")
    highlights: List[str] = Field(default_factory=list)
    upgrade_href: str = Field(..., alias="upgradeHref")
    manage_href: str = Field(..., alias="manageHref")


class GateDecisionResponse(BaseModel):
    """Response model for a feature gate decision."""

    outcome: str = Field(..., description="loading, allow, fallback, upgrade_prompt or empty")
    required_plan: str = Field(..., alias="requiredPlan")
    granted: bool
    prompt: Optional[UpgradePromptResponse] = None
