"""
HTTP surface for access decisions.

Backend enforcement is authoritative; the navigation and gate endpoints
exist so the frontend renders the same decisions the backend enforces.

Authentication is an external collaborator: it supplies the current user
(`{"id", "role", "membershipStatus"}`) through the app's user_loader, which
by default reads request.state.user.

Usage on a route:
    @router.get("/crm/{enterprise_id}/copilot")
    def copilot(context=Depends(require_crm_pro())):
        ...
"""

import logging
from typing import Any, Callable, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request

from .errors import (
    AuthenticationError,
    ErrorHandlerMiddleware,
    PaymentRequiredError,
    PermissionDeniedError,
    ServiceUnavailableError,
)
from .plans import PlanType, current_plan_label, parse_plan_type, plan_display_name
from .roles import Role, parse_role
from .schemas import GateDecisionResponse, SubscriptionStatusResponse
from .service import AccessContext, AccessService, user_id_of
from .settings import AccessSettings
from .subscription import Failed

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["access"])

UserLoader = Callable[[Request], Optional[Any]]


def _state_user(request: Request) -> Optional[Any]:
    return getattr(request.state, "user", None)


def get_access_service(request: Request) -> AccessService:
    return request.app.state.access_service


def get_current_user(request: Request) -> Optional[Any]:
    loader: UserLoader = getattr(request.app.state, "user_loader", _state_user)
    return loader(request)


def get_access_context(
    request: Request,
    workspace_id: Optional[str] = Query(default=None),
    service: AccessService = Depends(get_access_service),
) -> AccessContext:
    """Resolve role and subscription once per request."""
    context = getattr(request.state, "access_context", None)
    if context is None:
        context = service.resolve(get_current_user(request), workspace_id=workspace_id)
        request.state.access_context = context
    return context


def require_role(*roles: Role) -> Callable:
    """
    Dependency allowing only the given roles.

    Raises 401 for anonymous callers and 403 for signed-in callers
    without one of the roles.
    """
    allowed = {parse_role(r) for r in roles}

    def _check(context: AccessContext = Depends(get_access_context)) -> AccessContext:
        if not context.is_authenticated:
            raise AuthenticationError()
        if context.role not in allowed:
            logger.warning(
                "Role check denied",
                extra={
                    "user_id": context.user_id,
                    "role": context.role.value if context.role else None,
                    "required_roles": sorted(r.value for r in allowed if r),
                },
            )
            raise PermissionDeniedError(
                message=f"This action requires one of: {', '.join(sorted(r.value for r in allowed if r))}",
                details={"currentRole": context.role.value if context.role else None},
            )
        return context

    return _check


def require_plan(required_plan: Any = PlanType.CRM_BASIC) -> Callable:
    """
    Dependency enforcing the combined plan rule.

    Raises 402 when the plan or billing standing is insufficient and 503
    when the subscription could not be read (fail closed).
    """
    plan_value = getattr(required_plan, "value", required_plan)

    def _check(context: AccessContext = Depends(get_access_context)) -> AccessContext:
        state = context.subscription
        if isinstance(state, Failed):
            raise ServiceUnavailableError(
                message=state.error,
                details={"error_code": state.error_code},
            )
        if context.evaluator.can_access(plan_value):
            return context

        snapshot = context.evaluator.snapshot
        logger.warning(
            "Plan check denied",
            extra={
                "user_id": context.user_id,
                "required_plan": plan_value,
                "current_plan": snapshot.current_plan_type if snapshot else None,
                "subscription_status": snapshot.subscription_status if snapshot else None,
            },
        )
        raise PaymentRequiredError(
            message=f"This feature requires a {plan_display_name(plan_value)} subscription",
            details={
                "requiredPlan": plan_value,
                "currentPlan": current_plan_label(snapshot.current_plan_type if snapshot else None),
                "subscriptionStatus": snapshot.subscription_status if snapshot else None,
            },
        )

    return _check


def require_crm_pro() -> Callable:
    """
    Dependency for CRM Pro features (the items navigation flags requiresCrmPro).

    Needs crm_pro or build_pro_bundle in good standing; crm_basic shares the
    plan rank but not these features. Raises 402 when denied and 503 when
    the subscription could not be read.
    """

    def _check(context: AccessContext = Depends(get_access_context)) -> AccessContext:
        state = context.subscription
        if isinstance(state, Failed):
            raise ServiceUnavailableError(
                message=state.error,
                details={"error_code": state.error_code},
            )
        if context.evaluator.is_crm_pro():
            return context

        snapshot = context.evaluator.snapshot
        logger.warning(
            "CRM Pro check denied",
            extra={
                "user_id": context.user_id,
                "current_plan": snapshot.current_plan_type if snapshot else None,
                "subscription_status": snapshot.subscription_status if snapshot else None,
            },
        )
        raise PaymentRequiredError(
            message=f"This feature requires a {plan_display_name(PlanType.CRM_PRO)} subscription",
            details={
                "requiredPlan": PlanType.CRM_PRO.value,
                "currentPlan": current_plan_label(snapshot.current_plan_type if snapshot else None),
                "subscriptionStatus": snapshot.subscription_status if snapshot else None,
            },
        )

    return _check


@router.get("/navigation", response_model=dict)
def get_navigation(context: AccessContext = Depends(get_access_context)) -> dict:
    """Navigation sections visible to the caller."""
    body = context.navigation.to_dict()
    body["role"] = context.role.value if context.role else None
    return body


def _status_body(context: AccessContext) -> dict:
    state = context.subscription
    if isinstance(state, Failed):
        raise ServiceUnavailableError(message=state.error, details={"error_code": state.error_code})
    evaluator = context.evaluator
    return {
        "user": evaluator.snapshot.to_dict(),
        "hasActiveSubscription": evaluator.has_active_subscription(),
        "canAccessCrm": evaluator.can_access_crm(),
        "isCrmPro": evaluator.is_crm_pro(),
        "remainingTokens": evaluator.remaining_tokens(),
        "tokenUsagePercentage": evaluator.token_usage_percentage(),
    }


@router.get("/subscription/status", response_model=SubscriptionStatusResponse)
def get_subscription_status(context: AccessContext = Depends(get_access_context)) -> dict:
    if not context.is_authenticated:
        raise AuthenticationError()
    return _status_body(context)


@router.post("/subscription/refresh", response_model=SubscriptionStatusResponse)
def refresh_subscription_status(
    request: Request,
    service: AccessService = Depends(get_access_service),
) -> dict:
    """Re-read billing standing after a change, replacing the cached copy."""
    user = get_current_user(request)
    user_id = user_id_of(user)
    if user_id is None:
        raise AuthenticationError()
    state = service.refresh_subscription(user_id)
    return _status_body(service.resolve(user, subscription=state))


@router.get("/access/gate", response_model=GateDecisionResponse)
def get_gate_decision(
    required_plan: str = Query(default=PlanType.CRM_BASIC.value),
    show_upgrade: bool = Query(default=True),
    upgrade_message: Optional[str] = Query(default=None),
    context: AccessContext = Depends(get_access_context),
    service: AccessService = Depends(get_access_service),
) -> dict:
    if parse_plan_type(required_plan) is None:
        logger.warning("Gate requested for unknown plan", extra={"required_plan": required_plan})
    decision = service.gate(
        context,
        required_plan,
        show_upgrade=show_upgrade,
        upgrade_message=upgrade_message,
    )
    return decision.to_dict()


def create_app(
    settings: Optional[AccessSettings] = None,
    *,
    service: Optional[AccessService] = None,
    user_loader: Optional[UserLoader] = None,
) -> FastAPI:
    app = FastAPI(title="Earth Care Network access")
    app.state.access_service = service or AccessService(settings=settings)
    app.state.user_loader = user_loader or _state_user
    app.add_middleware(ErrorHandlerMiddleware)
    app.include_router(router)
    return app


__all__ = [
    "create_app",
    "get_access_context",
    "require_crm_pro",
    "require_plan",
    "require_role",
    "router",
]
