"""
Runtime settings for access resolution.

Configuration (environment variables):
- REDIS_URL:                       Query cache backend (unset: in-memory cache)
- DATABASE_URL:                    Subscription store (default: "sqlite:///./earthcare.db")
- SUBSCRIPTION_CACHE_TTL_SECONDS:  Freshness window for cached subscription reads (default: "300")
- NAVIGATION_CONFIG_PATH:          Navigation table JSON (default: config/navigation.json)
- PLANS_CONFIG_PATH:               Plan catalog JSON (default: config/plans.json)
- NAVIGATION_MEMBER_MENU_RULE:     "authenticated" or "role_restricted" (default: "authenticated")
- NAVIGATION_CRM_LINK_RULE:        "authenticated" or "role_restricted" (default: "authenticated")
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"
DEFAULT_NAVIGATION_CONFIG_PATH = CONFIG_DIR / "navigation.json"
DEFAULT_PLANS_CONFIG_PATH = CONFIG_DIR / "plans.json"
DEFAULT_CACHE_TTL_SECONDS = 300


@dataclass(frozen=True)
class AccessSettings:
    redis_url: Optional[str] = None
    database_url: str = "sqlite:///./earthcare.db"
    cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS
    navigation_config_path: Path = DEFAULT_NAVIGATION_CONFIG_PATH
    plans_config_path: Path = DEFAULT_PLANS_CONFIG_PATH
    member_menu_rule: str = "authenticated"
    crm_link_rule: str = "authenticated"

    @classmethod
    def from_env(cls) -> "AccessSettings":
        ttl = int(os.getenv("SUBSCRIPTION_CACHE_TTL_SECONDS", str(DEFAULT_CACHE_TTL_SECONDS)))
        if ttl <= 0:
            raise ValueError("SUBSCRIPTION_CACHE_TTL_SECONDS must be positive")
        return cls(
            redis_url=os.getenv("REDIS_URL") or None,
            database_url=os.getenv("DATABASE_URL", "sqlite:///./earthcare.db"),
            cache_ttl_seconds=ttl,
            navigation_config_path=Path(
                os.getenv("NAVIGATION_CONFIG_PATH", str(DEFAULT_NAVIGATION_CONFIG_PATH))
            ),
            plans_config_path=Path(os.getenv("PLANS_CONFIG_PATH", str(DEFAULT_PLANS_CONFIG_PATH))),
            member_menu_rule=os.getenv("NAVIGATION_MEMBER_MENU_RULE", "authenticated").strip().lower(),
            crm_link_rule=os.getenv("NAVIGATION_CRM_LINK_RULE", "authenticated").strip().lower(),
        )
