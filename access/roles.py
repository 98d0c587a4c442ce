"""
Role classification for navigation and route protection.

A user record arrives from the auth collaborator as a mapping, an ORM row,
or nothing at all. classify_role() turns it into one normalized Role; the
remaining helpers answer role questions the same way for every caller.

Role hierarchy: visitor < member < enterprise_owner < admin
Team roles (per-enterprise): viewer < editor < admin < owner
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Literal, Optional


class Role(str, Enum):
    """Site-wide user role."""
    VISITOR = "visitor"
    MEMBER = "member"
    ENTERPRISE_OWNER = "enterprise_owner"
    ADMIN = "admin"


ROLE_HIERARCHY: tuple[Role, ...] = (
    Role.VISITOR,
    Role.MEMBER,
    Role.ENTERPRISE_OWNER,
    Role.ADMIN,
)

_DASHBOARD_PATHS = {
    Role.ADMIN: "/admin/dashboard",
    Role.ENTERPRISE_OWNER: "/enterprise/dashboard",
    Role.MEMBER: "/member/dashboard",
}


def parse_role(value: Any) -> Optional[Role]:
    """Parse a raw role value; None when it is not one of the known roles."""
    if isinstance(value, Role):
        return value
    if value is None:
        return None
    raw = getattr(value, "value", value)
    try:
        return Role(str(raw).strip().lower())
    except ValueError:
        return None


def _raw_role(user: Any) -> Any:
    if isinstance(user, dict):
        return user.get("role")
    return getattr(user, "role", None)


def classify_role(user: Any, *, anonymous: Optional[Role] = None) -> Optional[Role]:
    """
    Map a raw user record to a normalized role.

    Total and side-effect free. A missing user yields `anonymous` (None by
    default; pass Role.VISITOR where the call site treats guests as visitors).
    A known user with a missing or unrecognized role is a visitor.
    """
    if user is None:
        return anonymous
    return parse_role(_raw_role(user)) or Role.VISITOR


def _user_role(user: Any) -> Optional[Role]:
    if user is None:
        return None
    return parse_role(_raw_role(user))


def has_role(user: Any, required_roles: Iterable[Role]) -> bool:
    """Check if a user has any of the required roles. Guests only match visitor."""
    required = {parse_role(r) for r in required_roles}
    role = _user_role(user)
    if role is None:
        return Role.VISITOR in required
    return role in required


def has_role_or_higher(user: Any, min_role: Role) -> bool:
    """Role hierarchy check: higher roles include lower role permissions."""
    role = _user_role(user)
    if role is None:
        return min_role == Role.VISITOR
    return ROLE_HIERARCHY.index(role) >= ROLE_HIERARCHY.index(min_role)


def default_redirect_path(user: Any) -> str:
    role = classify_role(user, anonymous=Role.VISITOR)
    return _DASHBOARD_PATHS.get(role, "/")


def unauthorized_redirect_path(user: Any) -> str:
    # Guests are sent to the membership pitch instead of the home page
    if user is None:
        return "/member-benefits"
    return default_redirect_path(user)


@dataclass(frozen=True)
class RouteDecision:
    outcome: Literal["loading", "allow", "redirect"]
    redirect_to: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.outcome == "allow"


def resolve_route_access(
    user: Any,
    required_roles: Iterable[Role],
    *,
    is_loading: bool = False,
    fallback_path: Optional[str] = None,
) -> RouteDecision:
    """Decide whether a protected route renders, waits, or redirects."""
    if is_loading:
        return RouteDecision(outcome="loading")
    if has_role(user, required_roles):
        return RouteDecision(outcome="allow")
    return RouteDecision(
        outcome="redirect",
        redirect_to=fallback_path or unauthorized_redirect_path(user),
    )


class TeamRole(str, Enum):
    """Role of a user inside one enterprise's team."""
    VIEWER = "viewer"
    EDITOR = "editor"
    ADMIN = "admin"
    OWNER = "owner"


TEAM_ROLE_LEVELS = {
    TeamRole.VIEWER: 1,
    TeamRole.EDITOR: 2,
    TeamRole.ADMIN: 3,
    TeamRole.OWNER: 4,
}


def has_team_role(actual: Optional[TeamRole], required: Iterable[TeamRole]) -> bool:
    """True when `actual` meets at least one of the required levels."""
    if actual is None:
        return False
    level = TEAM_ROLE_LEVELS[TeamRole(actual)]
    return any(level >= TEAM_ROLE_LEVELS[TeamRole(r)] for r in required)


def can_view_enterprise(role: TeamRole) -> bool:
    return has_team_role(role, [TeamRole.VIEWER])


def can_edit_enterprise(role: TeamRole) -> bool:
    return has_team_role(role, [TeamRole.EDITOR])


def can_manage_team(role: TeamRole) -> bool:
    return has_team_role(role, [TeamRole.ADMIN])


def can_invite_members(role: TeamRole) -> bool:
    return has_team_role(role, [TeamRole.ADMIN])


def can_remove_members(role: TeamRole) -> bool:
    return has_team_role(role, [TeamRole.ADMIN])


def can_change_role(current: TeamRole, target: TeamRole) -> bool:
    """A member may only assign roles at or below their own level."""
    return TEAM_ROLE_LEVELS[TeamRole(current)] >= TEAM_ROLE_LEVELS[TeamRole(target)]
