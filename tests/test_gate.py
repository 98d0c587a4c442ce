import pytest

from access.gate import (
    MANAGE_SUBSCRIPTION_HREF,
    UPGRADE_HREF,
    FeatureGate,
    GateOutcome,
    require_subscription,
)
from access.loader import default_plans_config
from access.plans import PlanType
from access.subscription import UNLOADED, Failed, Loaded, SubscriptionSnapshot


def _loaded(plan="free", status=None):
    return Loaded(SubscriptionSnapshot(current_plan_type=plan, subscription_status=status))


def test_active_crm_pro_member_is_allowed():
    decision = FeatureGate(PlanType.CRM_BASIC).evaluate(_loaded("crm_pro", "active"))
    assert decision.outcome == GateOutcome.ALLOW
    assert decision.granted is True
    assert decision.prompt is None


def test_free_user_gets_upgrade_prompt():
    decision = FeatureGate(PlanType.CRM_BASIC).evaluate(_loaded("free", "active"))
    assert decision.outcome == GateOutcome.UPGRADE_PROMPT
    prompt = decision.prompt
    assert prompt.title == "Upgrade Required"
    assert prompt.current_plan_label == "FREE"
    assert prompt.required_plan_name == "CRM Basic"
    assert prompt.message == "Access to this feature requires a CRM Basic subscription."
    assert prompt.show_manage_subscription is False
    assert prompt.status_notice is None
    assert prompt.upgrade_href == UPGRADE_HREF
    assert prompt.highlights == (
        "Full CRM access",
        "Opportunity management",
        "AI-powered lead scoring",
        "50,000 AI tokens/month",
    )


def test_custom_upgrade_message():
    gate = FeatureGate(PlanType.CRM_PRO, upgrade_message="Copilot needs CRM Pro.")
    assert gate.evaluate(_loaded()).prompt.message == "Copilot needs CRM Pro."


def test_fallback_takes_precedence_over_prompt():
    fallback = object()
    decision = FeatureGate(PlanType.CRM_BASIC, fallback=fallback).evaluate(_loaded())
    assert decision.outcome == GateOutcome.FALLBACK
    assert decision.content is fallback
    assert decision.prompt is None


def test_no_fallback_and_no_prompt_renders_nothing():
    decision = FeatureGate(PlanType.CRM_BASIC, show_upgrade=False).evaluate(_loaded())
    assert decision.outcome == GateOutcome.EMPTY
    assert decision.granted is False


def test_loading_never_decides_early():
    gate = FeatureGate(PlanType.CRM_BASIC, fallback="fallback")
    decision = gate.evaluate(UNLOADED)
    assert decision.outcome == GateOutcome.LOADING
    assert decision.granted is False
    assert decision.content is None


def test_failed_fetch_takes_denial_path():
    decision = FeatureGate(PlanType.CRM_BASIC).evaluate(Failed(error="down"))
    assert decision.outcome == GateOutcome.UPGRADE_PROMPT
    assert decision.prompt.current_plan_label == "FREE"
    assert decision.prompt.show_manage_subscription is False


def test_free_feature_allowed_even_when_fetch_failed():
    assert FeatureGate(PlanType.FREE).evaluate(Failed(error="down")).granted is True


@pytest.mark.parametrize(
    "status,notice",
    [
        ("canceled", "Your subscription has been canceled. Reactivate to continue using premium features."),
        ("past_due", "Your payment is past due. Please update your payment method."),
        ("unpaid", None),
    ],
)
def test_status_notices_for_lapsed_subscriptions(status, notice):
    decision = FeatureGate(PlanType.CRM_BASIC).evaluate(_loaded("crm_basic", status))
    assert decision.outcome == GateOutcome.UPGRADE_PROMPT
    assert decision.prompt.status_notice == notice
    assert decision.prompt.current_plan_label == "CRM BASIC"
    assert decision.prompt.show_manage_subscription is True
    assert decision.prompt.manage_href == MANAGE_SUBSCRIPTION_HREF


def test_unknown_required_plan_prompts_for_premium():
    decision = FeatureGate("gold").evaluate(_loaded("build_pro_bundle", "active"))
    assert decision.outcome == GateOutcome.UPGRADE_PROMPT
    assert decision.required_plan == "gold"
    assert decision.prompt.required_plan_name == "Premium"
    assert decision.prompt.highlights == ()


def test_decision_to_dict():
    body = FeatureGate(PlanType.CRM_PRO, plans=default_plans_config()).evaluate(_loaded()).to_dict()
    assert body["outcome"] == "upgrade_prompt"
    assert body["requiredPlan"] == "crm_pro"
    assert body["granted"] is False
    assert body["prompt"]["currentPlan"] == "FREE"
    assert body["prompt"]["upgradeHref"] == "/pricing"


def test_require_subscription():
    assert require_subscription(UNLOADED).has_access is False
    assert require_subscription(_loaded("crm_basic", "active")).has_access is True
    assert require_subscription(_loaded("crm_basic", "active"), PlanType.BUILD_PRO_BUNDLE).has_access is False
