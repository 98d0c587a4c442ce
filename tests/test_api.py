from unittest.mock import MagicMock

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient

from access.api import create_app, require_crm_pro, require_plan, require_role, router
from access.cache import QueryCache
from access.plans import PlanType
from access.roles import Role
from access.service import AccessService
from access.settings import AccessSettings
from access.subscription import SubscriptionSnapshot


def _header_user(request):
    user_id = request.headers.get("X-User-Id")
    if not user_id:
        return None
    return {"id": user_id, "role": request.headers.get("X-User-Role")}


def _client(fetcher):
    service = AccessService(
        subscription_fetcher=fetcher,
        cache=QueryCache(redis_url=""),
        settings=AccessSettings(),
    )
    app = create_app(service=service, user_loader=_header_user)

    @app.get("/api/admin/ping")
    def admin_ping(context=Depends(require_role(Role.ADMIN))):
        return {"role": context.role.value}

    @app.get("/api/crm/{enterprise_id}/people")
    def people(enterprise_id: str, context=Depends(require_plan(PlanType.CRM_BASIC))):
        return {"enterprise_id": enterprise_id}

    @app.get("/api/crm/{enterprise_id}/copilot")
    def copilot(enterprise_id: str, context=Depends(require_crm_pro())):
        return {"enterprise_id": enterprise_id}

    @app.get("/api/boom")
    def boom():
        raise RuntimeError("secret stack detail")

    return TestClient(app)


def _fetcher(plan="free", status=None):
    return MagicMock(return_value=SubscriptionSnapshot(current_plan_type=plan, subscription_status=status))


def _as(user_id, role):
    return {"X-User-Id": user_id, "X-User-Role": role}


def test_navigation_for_anonymous_caller():
    response = _client(_fetcher()).get("/api/navigation")
    assert response.status_code == 200
    body = response.json()
    assert body["role"] is None
    assert [item["href"] for item in body["publicLinks"]] == ["/enterprises"]
    assert body["memberMenu"] is None
    assert body["adminMenu"] is None


def test_navigation_for_admin_with_workspace():
    client = _client(_fetcher("crm_pro", "active"))
    response = client.get("/api/navigation", params={"workspace_id": "ent-7"}, headers=_as("u1", "admin"))
    body = response.json()
    assert body["role"] == "admin"
    assert len(body["adminMenu"]) == 6
    assert body["crmLink"]["testId"] == "nav-crm-link"
    assert body["crmSections"][1]["items"][1]["href"] == "/crm/ent-7/copilot"


def test_subscription_status_requires_authentication():
    response = _client(_fetcher()).get("/api/subscription/status")
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTHENTICATION_ERROR"


def test_subscription_status_body():
    fetcher = MagicMock(
        return_value=SubscriptionSnapshot(
            current_plan_type="crm_pro",
            subscription_status="active",
            token_usage_this_month=500,
            token_quota_limit=1000,
        )
    )
    body = _client(fetcher).get("/api/subscription/status", headers=_as("u1", "member")).json()
    assert body["user"]["currentPlanType"] == "crm_pro"
    assert body["hasActiveSubscription"] is True
    assert body["canAccessCrm"] is True
    assert body["isCrmPro"] is True
    assert body["remainingTokens"] == 500
    assert body["tokenUsagePercentage"] == 50.0


def test_subscription_status_unavailable_when_fetch_fails():
    client = _client(MagicMock(side_effect=RuntimeError("db down")))
    response = client.get("/api/subscription/status", headers=_as("u1", "member"))
    assert response.status_code == 503
    error = response.json()["error"]
    assert error["code"] == "SERVICE_UNAVAILABLE"
    assert error["details"]["error_code"] == "SUBSCRIPTION_UNAVAILABLE_FAIL_CLOSED"


def test_refresh_rereads_subscription():
    fetcher = MagicMock(
        side_effect=[
            SubscriptionSnapshot(current_plan_type="free"),
            SubscriptionSnapshot(current_plan_type="crm_basic", subscription_status="active"),
        ]
    )
    client = _client(fetcher)
    headers = _as("u1", "member")

    assert client.get("/api/subscription/status", headers=headers).json()["canAccessCrm"] is False
    assert client.get("/api/subscription/status", headers=headers).json()["canAccessCrm"] is False

    refreshed = client.post("/api/subscription/refresh", headers=headers)
    assert refreshed.status_code == 200
    assert refreshed.json()["canAccessCrm"] is True
    assert fetcher.call_count == 2


def test_refresh_requires_authentication():
    assert _client(_fetcher()).post("/api/subscription/refresh").status_code == 401


@pytest.mark.parametrize(
    "plan,status,outcome",
    [
        ("crm_pro", "active", "allow"),
        ("crm_pro", "past_due", "upgrade_prompt"),
        ("free", None, "upgrade_prompt"),
    ],
)
def test_gate_endpoint(plan, status, outcome):
    client = _client(_fetcher(plan, status))
    response = client.get("/api/access/gate", params={"required_plan": "crm_basic"}, headers=_as("u1", "member"))
    assert response.status_code == 200
    assert response.json()["outcome"] == outcome


def test_gate_endpoint_without_upgrade_prompt():
    client = _client(_fetcher())
    body = client.get(
        "/api/access/gate",
        params={"required_plan": "crm_pro", "show_upgrade": "false"},
        headers=_as("u1", "member"),
    ).json()
    assert body["outcome"] == "empty"
    assert body["prompt"] is None


def test_gate_endpoint_prompt_shape():
    client = _client(_fetcher("crm_basic", "canceled"))
    body = client.get("/api/access/gate", headers=_as("u1", "member")).json()
    prompt = body["prompt"]
    assert prompt["currentPlan"] == "CRM BASIC"
    assert prompt["requiredPlanName"] == "CRM Basic"
    assert prompt["statusNotice"].startswith("Your subscription has been canceled")
    assert prompt["showManageSubscription"] is True
    assert prompt["manageHref"] == "/subscription/dashboard"


def test_require_role_rejects_anonymous_with_401():
    response = _client(_fetcher()).get("/api/admin/ping")
    assert response.status_code == 401


def test_require_role_rejects_member_with_403():
    response = _client(_fetcher()).get("/api/admin/ping", headers=_as("u1", "member"))
    assert response.status_code == 403
    body = response.json()
    assert body["error"]["code"] == "PERMISSION_DENIED"
    assert body["error"]["details"]["currentRole"] == "member"


def test_require_role_allows_admin():
    response = _client(_fetcher()).get("/api/admin/ping", headers=_as("u1", "admin"))
    assert response.status_code == 200
    assert response.json() == {"role": "admin"}


@pytest.mark.parametrize("plan", ["crm_basic", "crm_pro", "build_pro_bundle"])
def test_require_plan_is_rank_based(plan):
    client = _client(_fetcher(plan, "active"))
    response = client.get("/api/crm/ent-1/people", headers=_as("u1", "member"))
    assert response.status_code == 200
    assert response.json() == {"enterprise_id": "ent-1"}


def test_require_plan_returns_402_for_free_or_lapsed_plans():
    response = _client(_fetcher("free", None)).get("/api/crm/ent-1/people", headers=_as("u1", "member"))
    assert response.status_code == 402
    assert response.json()["error"]["details"] == {
        "requiredPlan": "crm_basic",
        "currentPlan": "FREE",
        "subscriptionStatus": None,
    }

    lapsed = _client(_fetcher("crm_pro", "past_due")).get("/api/crm/ent-1/people", headers=_as("u1", "member"))
    assert lapsed.status_code == 402


def test_require_plan_returns_503_when_fetch_fails():
    client = _client(MagicMock(side_effect=RuntimeError("db down")))
    response = client.get("/api/crm/ent-1/people", headers=_as("u1", "member"))
    assert response.status_code == 503


@pytest.mark.parametrize("plan", ["crm_pro", "build_pro_bundle"])
def test_require_crm_pro_allows_pro_plans(plan):
    client = _client(_fetcher(plan, "active"))
    response = client.get("/api/crm/ent-1/copilot", headers=_as("u1", "enterprise_owner"))
    assert response.status_code == 200
    assert response.json() == {"enterprise_id": "ent-1"}


def test_require_crm_pro_rejects_crm_basic_with_402():
    client = _client(_fetcher("crm_basic", "active"))
    response = client.get("/api/crm/ent-1/copilot", headers=_as("u1", "enterprise_owner"))
    assert response.status_code == 402
    error = response.json()["error"]
    assert error["code"] == "PAYMENT_REQUIRED"
    assert error["details"] == {
        "requiredPlan": "crm_pro",
        "currentPlan": "CRM BASIC",
        "subscriptionStatus": "active",
    }


def test_require_crm_pro_rejects_lapsed_pro_plan():
    client = _client(_fetcher("crm_pro", "past_due"))
    response = client.get("/api/crm/ent-1/copilot", headers=_as("u1", "enterprise_owner"))
    assert response.status_code == 402


@pytest.mark.parametrize("plan", ["crm_basic", "crm_pro", "free"])
def test_crm_pro_guard_matches_navigation(plan):
    client = _client(_fetcher(plan, "active"))
    headers = _as("u1", "enterprise_owner")
    sections = client.get("/api/navigation", params={"workspace_id": "ent-1"}, headers=headers).json()["crmSections"]
    listed = any(item["href"] == "/crm/ent-1/copilot" for section in sections for item in section["items"])
    allowed = client.get("/api/crm/ent-1/copilot", headers=headers).status_code == 200
    assert listed is allowed


def test_require_crm_pro_returns_503_when_fetch_fails():
    client = _client(MagicMock(side_effect=RuntimeError("db down")))
    response = client.get("/api/crm/ent-1/copilot", headers=_as("u1", "enterprise_owner"))
    assert response.status_code == 503



def test_correlation_id_round_trip():
    client = _client(_fetcher())
    response = client.get("/api/navigation", headers={"X-Correlation-ID": "corr-123"})
    assert response.headers["X-Correlation-ID"] == "corr-123"

    denied = client.get("/api/admin/ping", headers={"X-Correlation-ID": "corr-456"})
    assert denied.headers["X-Correlation-ID"] == "corr-456"


def test_unhandled_errors_hide_details():
    response = _client(_fetcher()).get("/api/boom")
    assert response.status_code == 500
    body = response.json()
    assert body["error"]["code"] == "INTERNAL_ERROR"
    assert "secret" not in response.text
    assert body["error"]["details"]["correlation_id"] == response.headers["X-Correlation-ID"]


def test_router_is_mounted_under_api_prefix():
    paths = {route.path for route in router.routes}
    assert {"/api/navigation", "/api/subscription/status", "/api/subscription/refresh", "/api/access/gate"} <= paths
