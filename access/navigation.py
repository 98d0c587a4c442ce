"""
Navigation resolution.

Combines a normalized role, an optional workspace (the enterprise the CRM
user has selected) and the caller's subscription into the set of visible
navigation sections:

    public_links   always present
    member_menu    signed-in roles (see NavigationPolicy)
    crm_link       signed-in roles (see NavigationPolicy)
    crm_sections   present whenever crm_link is, workspace-scoped
    admin_menu     admin only, under every policy

Visitors and unauthenticated callers (role None or an unrecognized role
value) get public_links only.

Two navigation tables have historically disagreed on who sees the member
menu and the CRM link, so both rules are available through NavigationPolicy
and selected by configuration.

CRM sidebar items flagged requires_crm_pro are dropped unless the caller
holds CRM Pro or the Build Pro Bundle in good standing, regardless of role.
The other sections only get workspace substitution.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable, Optional, Tuple

from .errors import ConfigError
from .roles import Role, parse_role
from .subscription import SubscriptionEvaluator

if TYPE_CHECKING:
    from .settings import AccessSettings

WORKSPACE_PLACEHOLDER = "{enterprise_id}"


class NavIcon(str, Enum):
    """Symbolic icon identifiers; the presentation layer maps them to glyphs."""
    HOME = "home"
    HEART = "heart"
    USER_CIRCLE = "user_circle"
    SHIELD = "shield"
    FILE_TEXT = "file_text"
    USERS = "users"
    SETTINGS = "settings"
    CROWN = "crown"
    ARROW_RIGHT_LEFT = "arrow_right_left"
    LAYOUT_DASHBOARD = "layout_dashboard"
    BOOK = "book"
    BUILDING = "building"
    TRENDING_UP = "trending_up"
    CHECK_SQUARE = "check_square"
    BAR_CHART = "bar_chart"
    SPARKLES = "sparkles"
    UPLOAD = "upload"


class AccessRule(str, Enum):
    """Who may see a signed-in navigation section."""
    AUTHENTICATED = "authenticated"
    ROLE_RESTRICTED = "role_restricted"


ANONYMOUS_ROLES = frozenset({None, Role.VISITOR})
MEMBER_MENU_ROLES = frozenset({Role.MEMBER, Role.ENTERPRISE_OWNER, Role.ADMIN})
CRM_LINK_ROLES = frozenset({Role.ENTERPRISE_OWNER, Role.ADMIN})


@dataclass(frozen=True)
class NavItem:
    href: str
    label: str
    icon: NavIcon
    test_id: str
    requires_crm_pro: bool = False

    @property
    def is_workspace_scoped(self) -> bool:
        return WORKSPACE_PLACEHOLDER in self.href

    def for_workspace(self, workspace_id: Optional[str]) -> "NavItem":
        if not self.is_workspace_scoped:
            return self
        return NavItem(
            href=resolve_workspace_href(self.href, workspace_id),
            label=self.label,
            icon=self.icon,
            test_id=self.test_id,
            requires_crm_pro=self.requires_crm_pro,
        )

    def to_dict(self) -> dict:
        return {
            "href": self.href,
            "label": self.label,
            "icon": self.icon.value,
            "testId": self.test_id,
            "requiresCrmPro": self.requires_crm_pro,
        }


@dataclass(frozen=True)
class NavSection:
    title: str
    items: Tuple[NavItem, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "items", tuple(self.items))

    def to_dict(self) -> dict:
        return {"title": self.title, "items": [item.to_dict() for item in self.items]}


@dataclass(frozen=True)
class NavigationConfig:
    """Immutable navigation table."""

    public_links: Tuple[NavItem, ...]
    member_items: Tuple[NavItem, ...]
    admin_items: Tuple[NavItem, ...]
    crm_link: NavItem
    crm_sections: Tuple[NavSection, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "public_links", tuple(self.public_links))
        object.__setattr__(self, "member_items", tuple(self.member_items))
        object.__setattr__(self, "admin_items", tuple(self.admin_items))
        object.__setattr__(self, "crm_sections", tuple(self.crm_sections))


@dataclass(frozen=True)
class NavigationPolicy:
    """
    Who sees the member menu and the CRM link.

    Visitors count as anonymous under both rules. Every remaining role is
    member or above, so AUTHENTICATED and ROLE_RESTRICTED give the same
    member menu; the rules only differ for the CRM link, which
    ROLE_RESTRICTED withholds from plain members.
    """

    member_menu: AccessRule = AccessRule.AUTHENTICATED
    crm_link: AccessRule = AccessRule.AUTHENTICATED

    @classmethod
    def shared_config(cls) -> "NavigationPolicy":
        """Any signed-in role sees the member menu and the CRM link."""
        return cls(member_menu=AccessRule.AUTHENTICATED, crm_link=AccessRule.AUTHENTICATED)

    @classmethod
    def header_menu(cls) -> "NavigationPolicy":
        """Member menu for member and up; CRM link for enterprise owners and admins."""
        return cls(member_menu=AccessRule.ROLE_RESTRICTED, crm_link=AccessRule.ROLE_RESTRICTED)

    @classmethod
    def from_settings(cls, settings: "AccessSettings") -> "NavigationPolicy":
        try:
            return cls(
                member_menu=AccessRule(settings.member_menu_rule),
                crm_link=AccessRule(settings.crm_link_rule),
            )
        except ValueError as exc:
            raise ConfigError(f"invalid navigation access rule: {exc}") from exc

    def allows_member_menu(self, role: Optional[Role]) -> bool:
        if role in ANONYMOUS_ROLES:
            return False
        if self.member_menu == AccessRule.ROLE_RESTRICTED:
            return role in MEMBER_MENU_ROLES
        return True

    def allows_crm_link(self, role: Optional[Role]) -> bool:
        if role in ANONYMOUS_ROLES:
            return False
        if self.crm_link == AccessRule.ROLE_RESTRICTED:
            return role in CRM_LINK_ROLES
        return True


@dataclass(frozen=True)
class NavigationBundle:
    public_links: Tuple[NavItem, ...]
    member_menu: Optional[Tuple[NavItem, ...]] = None
    crm_link: Optional[NavItem] = None
    admin_menu: Optional[Tuple[NavItem, ...]] = None
    crm_sections: Optional[Tuple[NavSection, ...]] = field(default=None)

    def to_dict(self) -> dict:
        return {
            "publicLinks": [item.to_dict() for item in self.public_links],
            "memberMenu": _items_or_none(self.member_menu),
            "crmLink": self.crm_link.to_dict() if self.crm_link else None,
            "adminMenu": _items_or_none(self.admin_menu),
            "crmSections": (
                [section.to_dict() for section in self.crm_sections]
                if self.crm_sections is not None
                else None
            ),
        }


def _items_or_none(items: Optional[Tuple[NavItem, ...]]) -> Optional[list]:
    if items is None:
        return None
    return [item.to_dict() for item in items]


def resolve_workspace_href(template: str, workspace_id: Optional[str]) -> str:
    """Substitute the workspace id; no workspace leaves an empty segment."""
    return template.replace(WORKSPACE_PLACEHOLDER, str(workspace_id or "").strip())


def _visible(
    items: Iterable[NavItem],
    *,
    crm_pro: bool,
    workspace_id: Optional[str],
) -> Tuple[NavItem, ...]:
    return tuple(
        item.for_workspace(workspace_id)
        for item in items
        if crm_pro or not item.requires_crm_pro
    )


def resolve_crm_sections(
    config: NavigationConfig,
    *,
    workspace_id: Optional[str] = None,
    subscription: Optional[SubscriptionEvaluator] = None,
) -> Tuple[NavSection, ...]:
    """CRM sidebar sections for a workspace; sections left empty are dropped."""
    crm_pro = subscription.is_crm_pro() if subscription is not None else False
    sections = []
    for section in config.crm_sections:
        items = _visible(section.items, crm_pro=crm_pro, workspace_id=workspace_id)
        if items:
            sections.append(NavSection(title=section.title, items=items))
    return tuple(sections)


def resolve_navigation(
    role: Any,
    *,
    workspace_id: Optional[str] = None,
    subscription: Optional[SubscriptionEvaluator] = None,
    config: Optional[NavigationConfig] = None,
    policy: Optional[NavigationPolicy] = None,
) -> NavigationBundle:
    """
    Resolve the navigation bundle for one caller. Pure for equal inputs.

    Role values that do not parse to a known Role are treated as anonymous.
    """
    if config is None:
        from .loader import default_navigation_config

        config = default_navigation_config()
    policy = policy or NavigationPolicy()
    role = parse_role(role)

    def visible(items: Iterable[NavItem]) -> Tuple[NavItem, ...]:
        return tuple(item.for_workspace(workspace_id) for item in items)

    public_links = visible(config.public_links)
    if role in ANONYMOUS_ROLES:
        return NavigationBundle(public_links=public_links)

    member_menu = visible(config.member_items) if policy.allows_member_menu(role) else None

    crm_link = None
    crm_sections = None
    if policy.allows_crm_link(role):
        crm_link = config.crm_link.for_workspace(workspace_id)
        crm_sections = resolve_crm_sections(
            config, workspace_id=workspace_id, subscription=subscription
        )

    admin_menu = visible(config.admin_items) if role == Role.ADMIN else None

    return NavigationBundle(
        public_links=public_links,
        member_menu=member_menu,
        crm_link=crm_link,
        admin_menu=admin_menu,
        crm_sections=crm_sections,
    )
