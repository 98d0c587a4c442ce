"""
Feature gate: pass-through, fallback, or upgrade prompt.

Decision order for one gated feature:
1. subscription still loading          -> LOADING (never allow or deny early)
2. access granted                       -> ALLOW
3. denied, fallback supplied            -> FALLBACK
4. denied, show_upgrade                 -> UPGRADE_PROMPT
5. denied, no fallback, no prompt       -> EMPTY

A failed subscription fetch takes the denial path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Tuple

from .plans import (
    PlanType,
    PlansConfig,
    SubscriptionStatus,
    current_plan_label,
    parse_plan_type,
    plan_display_name,
)
from .subscription import SubscriptionEvaluator, SubscriptionState

UPGRADE_HREF = "/pricing"
MANAGE_SUBSCRIPTION_HREF = "/subscription/dashboard"

STATUS_NOTICES = {
    SubscriptionStatus.CANCELED: (
        "Your subscription has been canceled. Reactivate to continue using premium features."
    ),
    SubscriptionStatus.PAST_DUE: "Your payment is past due. Please update your payment method.",
}


class GateOutcome(str, Enum):
    LOADING = "loading"
    ALLOW = "allow"
    FALLBACK = "fallback"
    UPGRADE_PROMPT = "upgrade_prompt"
    EMPTY = "empty"


@dataclass(frozen=True)
class UpgradePrompt:
    required_plan: str
    required_plan_name: str
    message: str
    current_plan_label: str
    status_notice: Optional[str] = None
    show_manage_subscription: bool = False
    highlights: Tuple[str, ...] = ()
    title: str = "Upgrade Required"
    upgrade_href: str = UPGRADE_HREF
    manage_href: str = MANAGE_SUBSCRIPTION_HREF

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "message": self.message,
            "requiredPlan": self.required_plan,
            "requiredPlanName": self.required_plan_name,
            "currentPlan": self.current_plan_label,
            "statusNotice": self.status_notice,
            "showManageSubscription": self.show_manage_subscription,
            "highlights": list(self.highlights),
            "upgradeHref": self.upgrade_href,
            "manageHref": self.manage_href,
        }


@dataclass(frozen=True)
class GateDecision:
    outcome: GateOutcome
    required_plan: str
    content: Any = field(default=None, compare=False)
    prompt: Optional[UpgradePrompt] = None

    @property
    def granted(self) -> bool:
        return self.outcome == GateOutcome.ALLOW

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "requiredPlan": self.required_plan,
            "granted": self.granted,
            "prompt": self.prompt.to_dict() if self.prompt else None,
        }


def _plan_value(plan: Any) -> str:
    parsed = parse_plan_type(plan)
    if parsed is not None:
        return parsed.value
    return str(getattr(plan, "value", plan))


class FeatureGate:
    """Reusable access check for one feature."""

    def __init__(
        self,
        required_plan: Any = PlanType.CRM_BASIC,
        *,
        fallback: Any = None,
        upgrade_message: Optional[str] = None,
        show_upgrade: bool = True,
        plans: Optional[PlansConfig] = None,
    ):
        self.required_plan = _plan_value(required_plan)
        self.fallback = fallback
        self.upgrade_message = upgrade_message
        self.show_upgrade = show_upgrade
        self._plans = plans

    @property
    def plans(self) -> PlansConfig:
        if self._plans is None:
            from .loader import default_plans_config

            self._plans = default_plans_config()
        return self._plans

    def evaluate(self, state: SubscriptionState) -> GateDecision:
        evaluator = SubscriptionEvaluator(state)
        if evaluator.is_loading:
            return GateDecision(outcome=GateOutcome.LOADING, required_plan=self.required_plan)

        if evaluator.can_access(self.required_plan):
            return GateDecision(outcome=GateOutcome.ALLOW, required_plan=self.required_plan)

        if self.fallback is not None:
            return GateDecision(
                outcome=GateOutcome.FALLBACK,
                required_plan=self.required_plan,
                content=self.fallback,
            )

        if self.show_upgrade:
            return GateDecision(
                outcome=GateOutcome.UPGRADE_PROMPT,
                required_plan=self.required_plan,
                prompt=self.build_prompt(evaluator),
            )

        return GateDecision(outcome=GateOutcome.EMPTY, required_plan=self.required_plan)

    def build_prompt(self, evaluator: SubscriptionEvaluator) -> UpgradePrompt:
        plan_name = plan_display_name(self.required_plan)
        snapshot = evaluator.snapshot
        current_plan = snapshot.current_plan_type if snapshot else None
        status = snapshot.status if snapshot else None
        catalog_entry = self.plans.get(self.required_plan)

        return UpgradePrompt(
            required_plan=self.required_plan,
            required_plan_name=plan_name,
            message=self.upgrade_message
            or f"Access to this feature requires a {plan_name} subscription.",
            current_plan_label=current_plan_label(current_plan),
            status_notice=STATUS_NOTICES.get(status) if status else None,
            show_manage_subscription=(
                snapshot is not None
                and snapshot.plan is not None
                and snapshot.plan != PlanType.FREE
            ),
            highlights=catalog_entry.highlights if catalog_entry else (),
        )


@dataclass(frozen=True)
class SubscriptionRequirement:
    has_access: bool
    evaluator: SubscriptionEvaluator = field(compare=False)


def require_subscription(
    state: SubscriptionState,
    required_plan: Any = PlanType.CRM_BASIC,
) -> SubscriptionRequirement:
    """Combined access answer for code that branches instead of rendering a gate."""
    evaluator = SubscriptionEvaluator(state)
    if evaluator.is_loading:
        return SubscriptionRequirement(has_access=False, evaluator=evaluator)
    return SubscriptionRequirement(has_access=evaluator.can_access(required_plan), evaluator=evaluator)
