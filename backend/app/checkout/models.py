"""Domain models for checkout sessions and their reconciliation."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SessionStatus(str, Enum):
    """Lifecycle status reported by the payment provider for a checkout session."""

    OPEN = "open"
    COMPLETE = "complete"
    EXPIRED = "expired"


class CheckoutMode(str, Enum):
    """Provider checkout mode derived from the purchased price."""

    PAYMENT = "payment"
    SUBSCRIPTION = "subscription"


class PlanCategory(str, Enum):
    """Closed set of plan categories shown in the pricing catalog."""

    FREE = "free"
    INDIVIDUAL = "individual"
    TEAMS = "teams"
    BUSINESS = "business"
    ENTERPRISE = "enterprise"
    EVENT = "event"


class SubscriptionStatus(str, Enum):
    """Billing status of an account subscription."""

    INCOMPLETE = "incomplete"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


class ReconciliationStatus(str, Enum):
    """Outcome reported to callers of the reconcile operation."""

    COMPLETE = "complete"
    PENDING = "pending"


class PriceDetails(BaseModel):
    """Display metadata for a provider price."""

    price_id: str
    currency: str = "unknown"
    unit_amount: Optional[int] = None
    recurring: bool = False

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("currency")
    @classmethod
    def _lower_currency(cls, value: str) -> str:
        return value.lower() if value else "unknown"


class ProviderCheckoutSession(BaseModel):
    """Typed snapshot of a provider checkout session, normalized at the boundary."""

    session_id: str
    status: SessionStatus
    price_id: Optional[str] = None
    subscription_ref: Optional[str] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    shipping_address: Optional[str] = None
    payment_status: Optional[str] = None
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def account_hint(self) -> Optional[str]:
        """Account identifier attached to the session when it was created."""
        return self.metadata.get("user_id") or None


class Plan(BaseModel):
    """Immutable catalog entry describing a purchasable tier."""

    plan_id: str
    name: str
    category: PlanCategory
    price_id: str
    profile_limit: int = Field(default=1, ge=0)

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class Subscription(BaseModel):
    """Per-account subscription record; one live row per account."""

    account_id: str
    plan_id: str
    status: SubscriptionStatus
    provider_subscription_id: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class ReconciliationResult(BaseModel):
    """Denormalized payload returned by every reconcile call for a session."""

    status: ReconciliationStatus
    subscription_updated: bool = False
    plan_name: Optional[str] = None
    plan_category: Optional[PlanCategory] = None
    customer_email: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @classmethod
    def pending(cls, session: ProviderCheckoutSession) -> "ReconciliationResult":
        return cls(
            status=ReconciliationStatus.PENDING,
            subscription_updated=False,
            customer_email=session.customer_email,
        )


class ProcessedSession(BaseModel):
    """Write-once ledger row recording that a session has been reconciled."""

    session_id: str
    account_id: str
    plan_id: str
    plan_name: str
    plan_category: PlanCategory
    subscription_updated: bool = True
    customer_email: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_result(self) -> ReconciliationResult:
        """Rebuild the stored result payload."""

        return ReconciliationResult(
            status=ReconciliationStatus.COMPLETE,
            subscription_updated=self.subscription_updated,
            plan_name=self.plan_name,
            plan_category=self.plan_category,
            customer_email=self.customer_email,
        )


class OrderRecord(BaseModel):
    """Order history entry written alongside the ledger row for a session."""

    order_number: str
    account_id: str
    status: str
    payment_status: str
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    shipping_address: Optional[str] = None
    product_name: str
    quantity: int = Field(default=1, ge=1)
    amount: int = Field(default=0, ge=0)
    currency: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @classmethod
    def for_session(
        cls,
        session: ProviderCheckoutSession,
        *,
        account_id: str,
        plan: Plan,
    ) -> "OrderRecord":
        return cls(
            order_number=session.session_id,
            account_id=account_id,
            status="processing",
            payment_status=session.payment_status or "paid",
            customer_name=session.customer_name,
            customer_email=session.customer_email,
            shipping_address=session.shipping_address,
            product_name=plan.name,
            amount=session.amount_total or 0,
            currency=session.currency,
        )


class CheckoutSessionHandle(BaseModel):
    """Client-usable handle for an embedded checkout session."""

    client_secret: str

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class CheckoutAuditEventType(str, Enum):
    """Audit event categories emitted by the checkout flow."""

    SESSION_CREATED = "session_created"
    SUBSCRIPTION_ACTIVATED = "subscription_activated"
    RECONCILIATION_REPLAYED = "reconciliation_replayed"
    RECONCILIATION_FAILED = "reconciliation_failed"


class CheckoutAuditEvent(BaseModel):
    """Structured audit event for checkout activity."""

    event_type: CheckoutAuditEventType
    session_id: Optional[str] = None
    account_id: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)
