"""
Subscription evaluation.

Consumes subscription state that some collaborator already fetched and
answers plan questions about it. Fetching is not done here.

The state is an explicit sum type:
- Unloaded: the fetch has not resolved; predicates must not be evaluated
- Loaded:   a SubscriptionSnapshot is available
- Failed:   the fetch failed; every paid-plan decision denies

Combined access rule:
    can_access(required) = has_plan_access(required)
                           and (required == free or has_active_subscription())
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional, Union

from .errors import SubscriptionNotLoadedError
from .plans import (
    CRM_PRO_PLANS,
    PLAN_RANKS,
    PlanType,
    SubscriptionStatus,
    parse_plan_type,
    parse_subscription_status,
    plan_rank,
)

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = frozenset({SubscriptionStatus.ACTIVE})


@dataclass(frozen=True)
class SubscriptionSnapshot:
    """Subscription standing of one account as reported by the billing store."""

    current_plan_type: Optional[str] = PlanType.FREE.value
    subscription_status: Optional[str] = None
    current_period_end: Optional[datetime] = None
    token_usage_this_month: int = 0
    token_quota_limit: int = 0

    @property
    def plan(self) -> Optional[PlanType]:
        return parse_plan_type(self.current_plan_type)

    @property
    def status(self) -> Optional[SubscriptionStatus]:
        return parse_subscription_status(self.subscription_status)

    @classmethod
    def free(cls) -> "SubscriptionSnapshot":
        return cls(current_plan_type=PlanType.FREE.value, subscription_status=None)

    def to_dict(self) -> dict:
        return {
            "currentPlanType": self.current_plan_type,
            "subscriptionStatus": self.subscription_status,
            "subscriptionCurrentPeriodEnd": (
                self.current_period_end.isoformat() if self.current_period_end else None
            ),
            "tokenUsageThisMonth": self.token_usage_this_month,
            "tokenQuotaLimit": self.token_quota_limit,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "SubscriptionSnapshot":
        period_end = raw.get("subscriptionCurrentPeriodEnd")
        return cls(
            current_plan_type=raw.get("currentPlanType"),
            subscription_status=raw.get("subscriptionStatus"),
            current_period_end=datetime.fromisoformat(period_end) if period_end else None,
            token_usage_this_month=int(raw.get("tokenUsageThisMonth") or 0),
            token_quota_limit=int(raw.get("tokenQuotaLimit") or 0),
        )


@dataclass(frozen=True)
class Unloaded:
    kind: str = field(default="unloaded", init=False)


@dataclass(frozen=True)
class Loaded:
    snapshot: SubscriptionSnapshot
    kind: str = field(default="loaded", init=False)


@dataclass(frozen=True)
class Failed:
    error: str
    error_code: str = "SUBSCRIPTION_UNAVAILABLE_FAIL_CLOSED"
    kind: str = field(default="failed", init=False)


SubscriptionState = Union[Unloaded, Loaded, Failed]

UNLOADED = Unloaded()


class SubscriptionEvaluator:
    """Plan predicates over one SubscriptionState."""

    def __init__(self, state: SubscriptionState):
        self.state = state

    @property
    def is_loading(self) -> bool:
        return isinstance(self.state, Unloaded)

    @property
    def is_failed(self) -> bool:
        return isinstance(self.state, Failed)

    @property
    def snapshot(self) -> Optional[SubscriptionSnapshot]:
        if isinstance(self.state, Loaded):
            return self.state.snapshot
        return None

    def _require_resolved(self) -> None:
        if self.is_loading:
            raise SubscriptionNotLoadedError()

    def has_plan_access(self, required_plan: Any) -> bool:
        """True iff the current plan ranks at or above `required_plan`."""
        self._require_resolved()
        required = parse_plan_type(required_plan)
        if required is None:
            logger.warning("Unknown required plan denied", extra={"required_plan": required_plan})
            return False
        snapshot = self.snapshot
        if snapshot is None:
            return required == PlanType.FREE
        return plan_rank(snapshot.current_plan_type) >= PLAN_RANKS[required]

    def has_active_subscription(self) -> bool:
        self._require_resolved()
        snapshot = self.snapshot
        return snapshot is not None and snapshot.status in ACTIVE_STATUSES

    def can_access(self, required_plan: Any) -> bool:
        if not self.has_plan_access(required_plan):
            return False
        return parse_plan_type(required_plan) == PlanType.FREE or self.has_active_subscription()

    def can_access_crm(self) -> bool:
        return self.can_access(PlanType.CRM_BASIC)

    def is_crm_pro(self) -> bool:
        """CRM Pro tier with good standing; False while loading or failed."""
        snapshot = self.snapshot
        if snapshot is None:
            return False
        return snapshot.plan in CRM_PRO_PLANS and snapshot.status in ACTIVE_STATUSES

    def remaining_tokens(self) -> int:
        snapshot = self.snapshot
        if snapshot is None:
            return 0
        return max(0, snapshot.token_quota_limit - snapshot.token_usage_this_month)

    def token_usage_percentage(self) -> float:
        snapshot = self.snapshot
        if snapshot is None or snapshot.token_quota_limit == 0:
            return 0.0
        return snapshot.token_usage_this_month / snapshot.token_quota_limit * 100
