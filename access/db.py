"""
Subscription store.

Users carry their role and a denormalized copy of their billing standing
(current plan type, subscription status, period end, AI token usage) that
billing webhooks keep in sync. Subscription and SubscriptionPlan rows hold
the provider-side detail.

SqlSubscriptionFetcher reads a user's standing into a SubscriptionSnapshot
for the access service. It never writes.
"""

import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
)
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from .plans import PlanType, SubscriptionStatus
from .roles import Role
from .subscription import SubscriptionSnapshot

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


def _value(raw) -> Optional[str]:
    if raw is None:
        return None
    return getattr(raw, "value", raw)


class TimestampMixin:
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


class User(Base, TimestampMixin):
    """Account identity. Roles change only through admin action; rows are never deleted."""

    __tablename__ = "users"

    id = Column(String(255), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)

    role = Column(
        SAEnum(Role, name="user_role", values_callable=_enum_values),
        nullable=False,
        default=Role.VISITOR,
    )
    membership_status = Column(String(64), nullable=False, default="free")

    stripe_customer_id = Column(String(255), nullable=True)
    stripe_subscription_id = Column(String(255), nullable=True)
    subscription_status = Column(
        SAEnum(SubscriptionStatus, name="subscription_status", values_callable=_enum_values),
        nullable=True,
    )
    current_plan_type = Column(
        SAEnum(PlanType, name="plan_type", values_callable=_enum_values),
        nullable=False,
        default=PlanType.FREE,
    )
    subscription_current_period_end = Column(DateTime(timezone=True), nullable=True)

    token_usage_this_month = Column(Integer, nullable=False, default=0)
    token_quota_limit = Column(Integer, nullable=False, default=10000)

    subscriptions = relationship("Subscription", back_populates="user")

    def to_principal(self) -> dict:
        """Shape handed to access resolution by the auth layer."""
        return {
            "id": self.id,
            "role": _value(self.role),
            "membershipStatus": self.membership_status,
        }


class SubscriptionPlan(Base, TimestampMixin):
    __tablename__ = "subscription_plans"

    id = Column(String(255), primary_key=True, default=lambda: str(uuid.uuid4()))
    plan_type = Column(
        SAEnum(PlanType, name="plan_type", values_callable=_enum_values),
        nullable=False,
        unique=True,
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price_monthly = Column(Integer, nullable=False, comment="cents")
    price_yearly = Column(Integer, nullable=True, comment="cents")
    stripe_price_id_monthly = Column(String(255), nullable=True)
    stripe_price_id_yearly = Column(String(255), nullable=True)
    features = Column(JSON, nullable=False, default=list)
    token_quota_limit = Column(Integer, nullable=False, default=10000)
    is_active = Column(Boolean, nullable=False, default=True)
    display_order = Column(Integer, nullable=False, default=0)


class Subscription(Base, TimestampMixin):
    """Provider subscription for one user."""

    __tablename__ = "subscriptions"

    id = Column(String(255), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), ForeignKey("users.id"), nullable=False, index=True)
    plan_id = Column(String(255), ForeignKey("subscription_plans.id"), nullable=False)
    stripe_subscription_id = Column(String(255), unique=True, nullable=True)
    stripe_customer_id = Column(String(255), nullable=False)
    stripe_price_id = Column(String(255), nullable=False)
    status = Column(
        SAEnum(SubscriptionStatus, name="subscription_status", values_callable=_enum_values),
        nullable=False,
    )
    current_period_start = Column(DateTime(timezone=True), nullable=False)
    current_period_end = Column(DateTime(timezone=True), nullable=False)
    cancel_at = Column(DateTime(timezone=True), nullable=True)
    canceled_at = Column(DateTime(timezone=True), nullable=True)
    is_yearly = Column(Boolean, nullable=False, default=False)

    user = relationship("User", back_populates="subscriptions")
    plan = relationship("SubscriptionPlan")


def create_session_factory(database_url: str) -> sessionmaker:
    """Engine + session factory; in-memory SQLite shares one connection."""
    kwargs = {}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
    engine = create_engine(database_url, **kwargs)
    return sessionmaker(bind=engine, expire_on_commit=False)


def load_user(session: Session, user_id: str) -> Optional[User]:
    if not str(user_id).strip():
        raise ValueError("user_id is required")
    return session.get(User, user_id)


def snapshot_from_user(user: User) -> SubscriptionSnapshot:
    return SubscriptionSnapshot(
        current_plan_type=_value(user.current_plan_type) or PlanType.FREE.value,
        subscription_status=_value(user.subscription_status),
        current_period_end=user.subscription_current_period_end,
        token_usage_this_month=user.token_usage_this_month or 0,
        token_quota_limit=user.token_quota_limit or 0,
    )


class SqlSubscriptionFetcher:
    """Reads a user's subscription standing; unknown users read as free."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def __call__(self, user_id: str) -> SubscriptionSnapshot:
        with self._session_factory() as session:
            user = load_user(session, user_id)
            if user is None:
                return SubscriptionSnapshot.free()
            return snapshot_from_user(user)
