"""Application wiring for the checkout services."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache

from ..checkout import (
    CheckoutAuditEvent,
    CheckoutEventLogger,
    PriceCatalogResolver,
    SessionInitiator,
    SessionReconciler,
    StripePaymentProvider,
    load_checkout_config,
)
from ..checkout.repository import PostgresCheckoutRepository


logger = logging.getLogger("checkout")


class LoggingCheckoutEventLogger(CheckoutEventLogger):
    """Event logger forwarding checkout audit events to logging."""

    def log(self, event: CheckoutAuditEvent) -> None:
        logger.info(
            "Checkout event %s session=%s account=%s metadata=%s",
            event.event_type.value,
            event.session_id,
            event.account_id,
            event.metadata,
        )


@dataclass(frozen=True)
class CheckoutServices:
    initiator: SessionInitiator
    price_resolver: PriceCatalogResolver
    reconciler: SessionReconciler


@lru_cache(maxsize=1)
def get_checkout_services() -> CheckoutServices:
    config = load_checkout_config()
    if not config.provider_configured:
        logger.warning("Stripe secret key is not configured; checkout requests will fail")

    provider = StripePaymentProvider.from_config(config)
    repository = PostgresCheckoutRepository()
    event_logger = LoggingCheckoutEventLogger()
    return CheckoutServices(
        initiator=SessionInitiator(
            provider=provider,
            return_url=config.return_url,
            event_logger=event_logger,
        ),
        price_resolver=PriceCatalogResolver(
            provider=provider,
            max_workers=config.price_lookup_max_workers,
        ),
        reconciler=SessionReconciler(
            repository=repository,
            provider=provider,
            event_logger=event_logger,
        ),
    )


__all__ = ["CheckoutServices", "LoggingCheckoutEventLogger", "get_checkout_services"]
