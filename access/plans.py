from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, FrozenSet, Mapping, Optional, Tuple


class PlanType(str, Enum):
    """Subscription plan identifiers."""
    FREE = "free"
    CRM_BASIC = "crm_basic"
    CRM_PRO = "crm_pro"
    BUILD_PRO_BUNDLE = "build_pro_bundle"


class SubscriptionStatus(str, Enum):
    """Billing standing reported by the payment provider."""
    TRIAL = "trial"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"


# crm_basic was renamed crm_pro; both tiers carry the same rank
PLAN_RANKS: Mapping[PlanType, int] = MappingProxyType(
    {
        PlanType.FREE: 0,
        PlanType.CRM_BASIC: 1,
        PlanType.CRM_PRO: 1,
        PlanType.BUILD_PRO_BUNDLE: 2,
    }
)

CRM_PRO_PLANS: FrozenSet[PlanType] = frozenset({PlanType.CRM_PRO, PlanType.BUILD_PRO_BUNDLE})

_DISPLAY_NAMES = {
    PlanType.FREE: "Free",
    PlanType.CRM_BASIC: "CRM Basic",
    PlanType.CRM_PRO: "CRM Pro",
    PlanType.BUILD_PRO_BUNDLE: "Build Pro Bundle",
}


def parse_plan_type(value: Any) -> Optional[PlanType]:
    if isinstance(value, PlanType):
        return value
    if value is None:
        return None
    raw = getattr(value, "value", value)
    try:
        return PlanType(str(raw).strip().lower())
    except ValueError:
        return None


def parse_subscription_status(value: Any) -> Optional[SubscriptionStatus]:
    if isinstance(value, SubscriptionStatus):
        return value
    if value is None:
        return None
    raw = getattr(value, "value", value)
    try:
        return SubscriptionStatus(str(raw).strip().lower())
    except ValueError:
        return None


def plan_rank(value: Any) -> int:
    """Rank of a plan value; unknown or malformed values rank as free."""
    plan = parse_plan_type(value)
    if plan is None:
        return PLAN_RANKS[PlanType.FREE]
    return PLAN_RANKS[plan]


def plan_display_name(value: Any) -> str:
    plan = parse_plan_type(value)
    if plan is None:
        return "Premium"
    return _DISPLAY_NAMES[plan]


def current_plan_label(value: Any) -> str:
    """Badge text for the caller's plan, e.g. "CRM BASIC"; missing plans read FREE."""
    if value is None:
        return "FREE"
    raw = str(getattr(value, "value", value)).strip()
    if not raw:
        return "FREE"
    return raw.replace("_", " ").upper()


@dataclass(frozen=True)
class PlanDefinition:
    """Catalog entry for one plan from config/plans.json."""

    plan_type: PlanType
    name: str
    description: str = ""
    price_monthly_cents: int = 0
    price_yearly_cents: int = 0
    credit_allocation_cents: int = 0
    display_order: int = 0
    features: Tuple[str, ...] = ()
    highlights: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", self.name.strip())
        object.__setattr__(self, "features", tuple(self.features))
        object.__setattr__(self, "highlights", tuple(self.highlights))

    @property
    def rank(self) -> int:
        return PLAN_RANKS[self.plan_type]

    @property
    def is_paid(self) -> bool:
        return self.price_monthly_cents > 0


@dataclass(frozen=True)
class PlansConfig:
    """Parsed plan catalog."""

    plans: Mapping[PlanType, PlanDefinition] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "plans", MappingProxyType(dict(self.plans)))

    def get(self, plan: Any) -> Optional[PlanDefinition]:
        plan_type = parse_plan_type(plan)
        if plan_type is None:
            return None
        return self.plans.get(plan_type)

    def ordered(self) -> Tuple[PlanDefinition, ...]:
        return tuple(sorted(self.plans.values(), key=lambda p: (p.display_order, p.rank)))
