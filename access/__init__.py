"""
Access resolution for the Earth Care Network directory and CRM.

This package provides:
- classify_role: normalize a user record into a Role
- SubscriptionEvaluator: plan-rank and billing-standing predicates
- resolve_navigation: role/workspace/plan -> visible navigation sections
- FeatureGate: allow, fallback, upgrade prompt, or loading for one feature
- AccessService: per-request resolution with a cached subscription read
- create_app: FastAPI app exposing the same decisions to the frontend

Every decision fails closed: loading, missing or failed subscription data
never grants a paid feature, and only the public links are unconditional.
"""

from access.errors import (
    AccessError,
    ConfigError,
    SubscriptionEvaluationError,
    SubscriptionNotLoadedError,
)
from access.gate import FeatureGate, GateDecision, GateOutcome, UpgradePrompt, require_subscription
from access.navigation import (
    AccessRule,
    NavIcon,
    NavigationBundle,
    NavigationConfig,
    NavigationPolicy,
    NavItem,
    NavSection,
    resolve_crm_sections,
    resolve_navigation,
)
from access.plans import PlanType, SubscriptionStatus, plan_rank
from access.roles import Role, TeamRole, classify_role, has_role, has_role_or_higher
from access.service import AccessContext, AccessService
from access.subscription import (
    Failed,
    Loaded,
    SubscriptionEvaluator,
    SubscriptionSnapshot,
    SubscriptionState,
    Unloaded,
)

__all__ = [
    # Errors
    "AccessError",
    "ConfigError",
    "SubscriptionEvaluationError",
    "SubscriptionNotLoadedError",
    # Gate
    "FeatureGate",
    "GateDecision",
    "GateOutcome",
    "UpgradePrompt",
    "require_subscription",
    # Navigation
    "AccessRule",
    "NavIcon",
    "NavigationBundle",
    "NavigationConfig",
    "NavigationPolicy",
    "NavItem",
    "NavSection",
    "resolve_crm_sections",
    "resolve_navigation",
    # Plans
    "PlanType",
    "SubscriptionStatus",
    "plan_rank",
    # Roles
    "Role",
    "TeamRole",
    "classify_role",
    "has_role",
    "has_role_or_higher",
    # Service
    "AccessContext",
    "AccessService",
    # Subscription
    "Failed",
    "Loaded",
    "SubscriptionEvaluator",
    "SubscriptionSnapshot",
    "SubscriptionState",
    "Unloaded",
]
