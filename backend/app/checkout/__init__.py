"""Checkout domain package: session initiation, price lookup and reconciliation."""

from .config import DEFAULT_STRIPE_API_VERSION, CheckoutConfig, load_checkout_config
from .exceptions import (
    AccountResolutionError,
    CheckoutError,
    ConfigurationError,
    NotFoundError,
    ProviderError,
    ValidationError,
)
from .models import (
    CheckoutAuditEvent,
    CheckoutAuditEventType,
    CheckoutMode,
    CheckoutSessionHandle,
    OrderRecord,
    Plan,
    PlanCategory,
    PriceDetails,
    ProcessedSession,
    ProviderCheckoutSession,
    ReconciliationResult,
    ReconciliationStatus,
    SessionStatus,
    Subscription,
    SubscriptionStatus,
)
from .provider import PaymentProvider, StripePaymentProvider
from .service import (
    CheckoutEventLogger,
    CheckoutRepository,
    PriceCatalogResolver,
    SessionInitiator,
    SessionReconciler,
)

__all__ = [
    "DEFAULT_STRIPE_API_VERSION",
    "AccountResolutionError",
    "CheckoutAuditEvent",
    "CheckoutAuditEventType",
    "CheckoutConfig",
    "CheckoutError",
    "CheckoutEventLogger",
    "CheckoutMode",
    "CheckoutRepository",
    "CheckoutSessionHandle",
    "ConfigurationError",
    "NotFoundError",
    "OrderRecord",
    "PaymentProvider",
    "Plan",
    "PlanCategory",
    "PriceCatalogResolver",
    "PriceDetails",
    "ProcessedSession",
    "ProviderCheckoutSession",
    "ProviderError",
    "ReconciliationResult",
    "ReconciliationStatus",
    "SessionInitiator",
    "SessionReconciler",
    "SessionStatus",
    "StripePaymentProvider",
    "Subscription",
    "SubscriptionStatus",
    "ValidationError",
    "load_checkout_config",
]
