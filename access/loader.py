from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import RLock
from typing import Any, Dict, List, Union

from .errors import ConfigError
from .navigation import NavIcon, NavigationConfig, NavItem, NavSection
from .plans import PlanDefinition, PlansConfig, parse_plan_type
from .settings import DEFAULT_NAVIGATION_CONFIG_PATH, DEFAULT_PLANS_CONFIG_PATH

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _read_config_file(path: Path) -> dict:
    try:
        with path.open("r", encoding="utf-8") as handle:
            raw = json.load(handle)
    except FileNotFoundError as exc:
        raise ConfigError(f"config file not found: {path}", path=str(path)) from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"config file is not valid JSON: {exc}", path=str(path)) from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"{path.name} must contain a top-level object", path=str(path))
    return raw


def _derive_test_id(label: str) -> str:
    return "nav-" + "-".join(label.lower().split())


def _parse_item(raw: Any, where: str) -> NavItem:
    if not isinstance(raw, dict):
        raise ConfigError(f"{where} must be an object")
    href = raw.get("href")
    label = raw.get("label")
    if not isinstance(href, str) or not href.strip():
        raise ConfigError(f"{where} has invalid href: {href!r}")
    if not isinstance(label, str) or not label.strip():
        raise ConfigError(f"{where} has invalid label: {label!r}")
    try:
        icon = NavIcon(raw.get("icon"))
    except ValueError as exc:
        raise ConfigError(f"{where} has unknown icon: {raw.get('icon')!r}") from exc
    test_id = raw.get("testId") or _derive_test_id(label)
    return NavItem(
        href=href.strip(),
        label=label.strip(),
        icon=icon,
        test_id=str(test_id).strip(),
        requires_crm_pro=bool(raw.get("requiresCrmPro", False)),
    )


def _parse_items(raw: Any, where: str) -> List[NavItem]:
    if not isinstance(raw, list):
        raise ConfigError(f"'{where}' must be a list of navigation items")
    return [_parse_item(item, f"{where}[{index}]") for index, item in enumerate(raw)]


class NavigationConfigLoader:
    """Loads the navigation table from config/navigation.json with reload support."""

    def __init__(self, config_path: PathLike = DEFAULT_NAVIGATION_CONFIG_PATH) -> None:
        self._config_path = Path(config_path)
        self._lock = RLock()
        self._config: NavigationConfig
        self.reload()

    @property
    def config(self) -> NavigationConfig:
        with self._lock:
            return self._config

    def reload(self) -> None:
        raw = _read_config_file(self._config_path)
        parsed = self.parse(raw)
        with self._lock:
            self._config = parsed
        logger.info(
            "Loaded navigation config",
            extra={"path": str(self._config_path), "crm_sections": len(parsed.crm_sections)},
        )

    @staticmethod
    def parse(raw: dict) -> NavigationConfig:
        if "crmLink" not in raw:
            raise ConfigError("navigation config must include 'crmLink'")

        sections: List[NavSection] = []
        sections_raw = raw.get("crmSections", [])
        if not isinstance(sections_raw, list):
            raise ConfigError("'crmSections' must be a list")
        for index, section in enumerate(sections_raw):
            if not isinstance(section, dict):
                raise ConfigError(f"crmSections[{index}] must be an object")
            title = section.get("title")
            if not isinstance(title, str) or not title.strip():
                raise ConfigError(f"crmSections[{index}] has invalid title: {title!r}")
            sections.append(
                NavSection(
                    title=title.strip(),
                    items=_parse_items(section.get("items"), f"crmSections[{index}].items"),
                )
            )

        return NavigationConfig(
            public_links=_parse_items(raw.get("publicLinks"), "publicLinks"),
            member_items=_parse_items(raw.get("memberItems"), "memberItems"),
            admin_items=_parse_items(raw.get("adminItems"), "adminItems"),
            crm_link=_parse_item(raw["crmLink"], "crmLink"),
            crm_sections=sections,
        )


class PlanCatalogLoader:
    """Loads the plan catalog from config/plans.json with reload support."""

    def __init__(self, config_path: PathLike = DEFAULT_PLANS_CONFIG_PATH) -> None:
        self._config_path = Path(config_path)
        self._lock = RLock()
        self._config: PlansConfig
        self.reload()

    @property
    def config(self) -> PlansConfig:
        with self._lock:
            return self._config

    def reload(self) -> None:
        raw = _read_config_file(self._config_path)
        parsed = self.parse(raw)
        with self._lock:
            self._config = parsed
        logger.info(
            "Loaded plan catalog",
            extra={"path": str(self._config_path), "plans": [p.value for p in parsed.plans]},
        )

    @staticmethod
    def parse(raw: dict) -> PlansConfig:
        plans_raw = raw.get("plans")
        if not isinstance(plans_raw, dict):
            raise ConfigError("plans config must include an object field named 'plans'")

        plans: Dict[Any, PlanDefinition] = {}
        for plan_key, plan_data in plans_raw.items():
            plan_type = parse_plan_type(plan_key)
            if plan_type is None:
                raise ConfigError(f"Unknown plan: {plan_key!r}")
            if not isinstance(plan_data, dict):
                raise ConfigError(f"plan '{plan_key}' must be an object")

            name = plan_data.get("name")
            if not isinstance(name, str) or not name.strip():
                raise ConfigError(f"plan '{plan_key}' must have a name")

            for list_field in ("features", "highlights"):
                values = plan_data.get(list_field, [])
                if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
                    raise ConfigError(f"plan '{plan_key}' {list_field} must be a list of strings")

            try:
                plans[plan_type] = PlanDefinition(
                    plan_type=plan_type,
                    name=name,
                    description=str(plan_data.get("description", "")),
                    price_monthly_cents=int(plan_data.get("priceMonthly", 0)),
                    price_yearly_cents=int(plan_data.get("priceYearly", 0)),
                    credit_allocation_cents=int(plan_data.get("creditAllocation", 0)),
                    display_order=int(plan_data.get("displayOrder", 0)),
                    features=tuple(plan_data.get("features", [])),
                    highlights=tuple(plan_data.get("highlights", [])),
                )
            except (TypeError, ValueError) as exc:
                raise ConfigError(f"plan '{plan_key}' has invalid numeric field: {exc}") from exc

        if not plans:
            raise ConfigError("plans config must define at least one plan")

        return PlansConfig(plans=plans)


@lru_cache(maxsize=None)
def _cached_navigation_config(path: str) -> NavigationConfig:
    return NavigationConfigLoader(path).config


@lru_cache(maxsize=None)
def _cached_plans_config(path: str) -> PlansConfig:
    return PlanCatalogLoader(path).config


def default_navigation_config() -> NavigationConfig:
    return _cached_navigation_config(str(DEFAULT_NAVIGATION_CONFIG_PATH))


def default_plans_config() -> PlansConfig:
    return _cached_plans_config(str(DEFAULT_PLANS_CONFIG_PATH))
