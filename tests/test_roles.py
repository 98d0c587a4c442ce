from types import SimpleNamespace

import pytest

from access.roles import (
    Role,
    TeamRole,
    can_change_role,
    can_edit_enterprise,
    can_invite_members,
    can_manage_team,
    can_remove_members,
    can_view_enterprise,
    classify_role,
    default_redirect_path,
    has_role,
    has_role_or_higher,
    has_team_role,
    resolve_route_access,
    unauthorized_redirect_path,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("admin", Role.ADMIN),
        ("enterprise_owner", Role.ENTERPRISE_OWNER),
        ("member", Role.MEMBER),
        ("visitor", Role.VISITOR),
        (" Admin ", Role.ADMIN),
        ("superuser", Role.VISITOR),
        (None, Role.VISITOR),
    ],
)
def test_classify_role_for_dict_user(raw, expected):
    assert classify_role({"id": "u1", "role": raw}) == expected


def test_classify_role_reads_attribute_users():
    assert classify_role(SimpleNamespace(id="u1", role="member")) == Role.MEMBER
    assert classify_role(SimpleNamespace(id="u1")) == Role.VISITOR


def test_classify_role_without_user_is_anonymous():
    assert classify_role(None) is None
    assert classify_role(None, anonymous=Role.VISITOR) == Role.VISITOR


def test_has_role_guest_only_matches_visitor():
    assert has_role(None, [Role.VISITOR]) is True
    assert has_role(None, [Role.MEMBER, Role.ADMIN]) is False
    assert has_role({"role": "admin"}, [Role.ADMIN]) is True
    assert has_role({"role": "member"}, ["admin", "enterprise_owner"]) is False


def test_has_role_or_higher_follows_hierarchy():
    owner = {"role": "enterprise_owner"}
    assert has_role_or_higher(owner, Role.MEMBER) is True
    assert has_role_or_higher(owner, Role.ENTERPRISE_OWNER) is True
    assert has_role_or_higher(owner, Role.ADMIN) is False
    assert has_role_or_higher(None, Role.VISITOR) is True
    assert has_role_or_higher(None, Role.MEMBER) is False


def test_redirect_paths():
    assert default_redirect_path({"role": "admin"}) == "/admin/dashboard"
    assert default_redirect_path({"role": "enterprise_owner"}) == "/enterprise/dashboard"
    assert default_redirect_path({"role": "member"}) == "/member/dashboard"
    assert default_redirect_path({"role": "visitor"}) == "/"
    assert default_redirect_path(None) == "/"
    assert unauthorized_redirect_path(None) == "/member-benefits"
    assert unauthorized_redirect_path({"role": "member"}) == "/member/dashboard"


def test_route_access_waits_while_loading():
    decision = resolve_route_access(None, [Role.ADMIN], is_loading=True)
    assert decision.outcome == "loading"
    assert decision.allowed is False
    assert decision.redirect_to is None


def test_route_access_allows_and_redirects():
    assert resolve_route_access({"role": "admin"}, [Role.ADMIN]).allowed is True

    denied = resolve_route_access({"role": "member"}, [Role.ADMIN])
    assert denied.outcome == "redirect"
    assert denied.redirect_to == "/member/dashboard"

    guest = resolve_route_access(None, [Role.MEMBER])
    assert guest.redirect_to == "/member-benefits"

    custom = resolve_route_access(None, [Role.MEMBER], fallback_path="/login")
    assert custom.redirect_to == "/login"


def test_team_role_levels():
    assert has_team_role(TeamRole.OWNER, [TeamRole.ADMIN]) is True
    assert has_team_role(TeamRole.EDITOR, [TeamRole.ADMIN]) is False
    assert has_team_role(TeamRole.EDITOR, [TeamRole.ADMIN, TeamRole.VIEWER]) is True
    assert has_team_role(None, [TeamRole.VIEWER]) is False


def test_team_permissions():
    assert can_view_enterprise(TeamRole.VIEWER) is True
    assert can_edit_enterprise(TeamRole.VIEWER) is False
    assert can_edit_enterprise(TeamRole.EDITOR) is True
    assert can_manage_team(TeamRole.EDITOR) is False
    assert can_manage_team(TeamRole.ADMIN) is True
    assert can_invite_members(TeamRole.ADMIN) is True
    assert can_remove_members(TeamRole.OWNER) is True


def test_can_change_role_only_downwards():
    assert can_change_role(TeamRole.ADMIN, TeamRole.EDITOR) is True
    assert can_change_role(TeamRole.ADMIN, TeamRole.ADMIN) is True
    assert can_change_role(TeamRole.ADMIN, TeamRole.OWNER) is False
