from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from .cache import QueryCache
from .errors import SubscriptionEvaluationError
from .gate import FeatureGate, GateDecision, GateOutcome
from .loader import NavigationConfigLoader, PlanCatalogLoader
from .navigation import NavigationBundle, NavigationConfig, NavigationPolicy, resolve_navigation
from .plans import PlansConfig
from .roles import Role, classify_role
from .settings import AccessSettings
from .subscription import Failed, Loaded, SubscriptionEvaluator, SubscriptionSnapshot, SubscriptionState

logger = logging.getLogger(__name__)

SUBSCRIPTION_QUERY = "subscription_status"
FAIL_CLOSED_ERROR_CODE = "SUBSCRIPTION_UNAVAILABLE_FAIL_CLOSED"

SubscriptionFetcher = Callable[[str], Optional[SubscriptionSnapshot]]


def user_id_of(user: Any) -> Optional[str]:
    if user is None:
        return None
    raw = user.get("id") if isinstance(user, dict) else getattr(user, "id", None)
    if raw is None or not str(raw).strip():
        return None
    return str(raw).strip()


@dataclass(frozen=True)
class AccessContext:
    """Role, subscription and navigation resolved once for a request."""

    user_id: Optional[str]
    role: Optional[Role]
    subscription: SubscriptionState
    navigation: NavigationBundle
    workspace_id: Optional[str] = None
    evaluator: SubscriptionEvaluator = field(init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "evaluator", SubscriptionEvaluator(self.subscription))

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


class AccessService:
    """Per-request access resolution with a cached subscription read."""

    def __init__(
        self,
        *,
        subscription_fetcher: Optional[SubscriptionFetcher] = None,
        cache: Optional[QueryCache] = None,
        settings: Optional[AccessSettings] = None,
        navigation_config: Optional[NavigationConfig] = None,
        plans: Optional[PlansConfig] = None,
        policy: Optional[NavigationPolicy] = None,
        audit_sink: Optional[Callable[[str, dict], None]] = None,
    ) -> None:
        self.settings = settings or AccessSettings.from_env()
        if subscription_fetcher is None:
            from .db import SqlSubscriptionFetcher, create_session_factory

            subscription_fetcher = SqlSubscriptionFetcher(
                create_session_factory(self.settings.database_url)
            )
        self._fetch_subscription = subscription_fetcher
        self.cache = cache or QueryCache(
            redis_url=self.settings.redis_url or "",
            ttl_seconds=self.settings.cache_ttl_seconds,
        )
        self.navigation_config = navigation_config or NavigationConfigLoader(
            self.settings.navigation_config_path
        ).config
        self.plans = plans or PlanCatalogLoader(self.settings.plans_config_path).config
        self.policy = policy or NavigationPolicy.from_settings(self.settings)
        self._audit_sink = audit_sink or (lambda event, payload: None)

    def load_subscription(self, user_id: Optional[str]) -> SubscriptionState:
        """Cached subscription read. Failures become Failed, never raise."""
        if not user_id:
            return Loaded(SubscriptionSnapshot.free())

        try:
            payload = self.cache.get_or_fetch(
                SUBSCRIPTION_QUERY,
                user_id,
                lambda: (self._fetch_subscription(user_id) or SubscriptionSnapshot.free()).to_dict(),
            )
            return Loaded(SubscriptionSnapshot.from_dict(payload))
        except Exception as exc:  # fail closed: callers see Failed and deny paid features
            error = SubscriptionEvaluationError(user_id, str(exc), cause=exc)
            payload = {
                "user_id": user_id,
                "error": error.detail,
                "error_code": error.error_code,
                "occurred_at": datetime.now(timezone.utc).isoformat(),
            }
            logger.warning("Subscription fetch failed", extra=payload)
            self._audit_sink("subscription.fetch_failed", payload)
            return Failed(error="Subscription unavailable. Access denied.", error_code=error.error_code)

    def refresh_subscription(self, user_id: str) -> SubscriptionState:
        """Drop the cached read and fetch again (e.g. after a billing webhook)."""
        if not str(user_id).strip():
            raise ValueError("user_id is required")
        self.cache.invalidate(SUBSCRIPTION_QUERY, user_id)
        return self.load_subscription(user_id)

    def resolve(
        self,
        user: Any,
        *,
        workspace_id: Optional[str] = None,
        subscription: Optional[SubscriptionState] = None,
    ) -> AccessContext:
        role = classify_role(user)
        user_id = user_id_of(user)
        state = subscription if subscription is not None else self.load_subscription(user_id)
        navigation = resolve_navigation(
            role,
            workspace_id=workspace_id,
            subscription=SubscriptionEvaluator(state),
            config=self.navigation_config,
            policy=self.policy,
        )
        return AccessContext(
            user_id=user_id,
            role=role,
            subscription=state,
            navigation=navigation,
            workspace_id=workspace_id,
        )

    def gate(self, context: AccessContext, required_plan: Any, **options: Any) -> GateDecision:
        decision = FeatureGate(required_plan, plans=self.plans, **options).evaluate(context.subscription)
        if decision.outcome not in (GateOutcome.ALLOW, GateOutcome.LOADING):
            logger.info(
                "Feature gate denied",
                extra={
                    "user_id": context.user_id,
                    "required_plan": decision.required_plan,
                    "outcome": decision.outcome.value,
                },
            )
        return decision
