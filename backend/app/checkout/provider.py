"""Payment provider integration for checkout sessions.

The provider owns checkout-session truth.  Everything returned from this
module is normalized into :mod:`.models` types so that loosely typed provider
payloads never travel further into the system.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional, Protocol

import stripe

from .config import CheckoutConfig
from .exceptions import NotFoundError, ProviderError
from .models import CheckoutMode, PriceDetails, ProviderCheckoutSession, SessionStatus

logger = logging.getLogger(__name__)

_RESOURCE_MISSING = "resource_missing"


class PaymentProvider(Protocol):
    """External payment processor operations used by checkout."""

    def retrieve_price(self, price_id: str) -> PriceDetails:
        """Fetch a single price.

        Raises:
            NotFoundError: the provider has no such price.
            ProviderError: the provider is unreachable or rejected the request.
        """

    def create_checkout_session(
        self,
        *,
        price_id: str,
        quantity: int,
        mode: CheckoutMode,
        return_url: str,
        metadata: Dict[str, str],
    ) -> str:
        """Open an embedded checkout session and return its client secret."""

    def retrieve_checkout_session(self, session_id: str) -> ProviderCheckoutSession:
        """Fetch the canonical state of a checkout session."""


class StripePaymentProvider:
    """Stripe implementation of :class:`PaymentProvider`."""

    def __init__(self, *, secret_key: Optional[str], api_version: str) -> None:
        self.secret_key = secret_key
        self.api_version = api_version
        if secret_key:
            stripe.api_key = secret_key
            stripe.api_version = api_version
            # Retries are the caller's decision.
            stripe.max_network_retries = 0

    @classmethod
    def from_config(cls, config: CheckoutConfig) -> "StripePaymentProvider":
        return cls(secret_key=config.stripe_secret_key, api_version=config.stripe_api_version)

    def _ensure_configured(self) -> None:
        if not self.secret_key:
            raise ProviderError("Stripe is not configured")

    def retrieve_price(self, price_id: str) -> PriceDetails:
        self._ensure_configured()
        try:
            price = stripe.Price.retrieve(price_id)
        except stripe.InvalidRequestError as exc:
            raise _translate_invalid_request(exc, resource="price", identifier=price_id) from exc
        except stripe.StripeError as exc:
            raise _provider_error("Price retrieval failed", exc, price_id=price_id) from exc

        return PriceDetails(
            price_id=_field(price, "id") or price_id,
            currency=_field(price, "currency") or "unknown",
            unit_amount=_field(price, "unit_amount"),
            recurring=_field(price, "recurring") is not None,
        )

    def create_checkout_session(
        self,
        *,
        price_id: str,
        quantity: int,
        mode: CheckoutMode,
        return_url: str,
        metadata: Dict[str, str],
    ) -> str:
        self._ensure_configured()
        try:
            session = stripe.checkout.Session.create(
                ui_mode="embedded",
                mode=mode.value,
                line_items=[{"price": price_id, "quantity": quantity}],
                return_url=return_url,
                metadata=metadata,
            )
        except stripe.StripeError as exc:
            raise _provider_error("Checkout session creation failed", exc, price_id=price_id) from exc

        client_secret = _field(session, "client_secret")
        if not client_secret:
            raise ProviderError(
                "Checkout session created without a client secret",
                detail={"session_id": _field(session, "id")},
            )
        return client_secret

    def retrieve_checkout_session(self, session_id: str) -> ProviderCheckoutSession:
        self._ensure_configured()
        try:
            session = stripe.checkout.Session.retrieve(
                session_id,
                expand=["line_items.data.price"],
            )
        except stripe.InvalidRequestError as exc:
            raise _translate_invalid_request(exc, resource="session", identifier=session_id) from exc
        except stripe.StripeError as exc:
            raise _provider_error("Checkout session retrieval failed", exc, session_id=session_id) from exc

        return session_from_stripe(session)


def session_from_stripe(session: Any) -> ProviderCheckoutSession:
    """Normalize a Stripe checkout session object."""

    session_id = _field(session, "id")
    raw_status = _field(session, "status")
    try:
        status = SessionStatus(str(raw_status))
    except ValueError as exc:
        raise ProviderError(
            "Checkout session has an unrecognized status",
            detail={"session_id": session_id, "status": raw_status},
        ) from exc

    customer_details = _field(session, "customer_details")
    customer_email = _field(customer_details, "email") or _field(session, "customer_email")
    subscription = _field(session, "subscription")
    if subscription is not None and not isinstance(subscription, str):
        subscription = _field(subscription, "id")

    return ProviderCheckoutSession(
        session_id=str(session_id),
        status=status,
        price_id=_first_line_item_price(session),
        subscription_ref=subscription,
        customer_email=customer_email,
        customer_name=_field(customer_details, "name"),
        shipping_address=_address_json(_field(customer_details, "address")),
        payment_status=_field(session, "payment_status"),
        amount_total=_field(session, "amount_total"),
        currency=_field(session, "currency"),
        metadata=_string_mapping(_field(session, "metadata")),
    )


def _first_line_item_price(session: Any) -> Optional[str]:
    line_items = _field(session, "line_items")
    items = _field(line_items, "data") or []
    for item in items:
        price = _field(item, "price")
        if isinstance(price, str):
            return price
        price_id = _field(price, "id")
        if price_id:
            return str(price_id)
    return None


def _field(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _string_mapping(value: Any) -> Dict[str, str]:
    if value is None:
        return {}
    if hasattr(value, "to_dict"):
        value = value.to_dict()
    if isinstance(value, Mapping):
        return {str(k): str(v) for k, v in value.items()}
    return {}


def _address_json(value: Any) -> Optional[str]:
    """Serialize a customer address to JSON, dropping empty parts."""

    if value is None:
        return None
    if hasattr(value, "to_dict"):
        value = value.to_dict()
    if not isinstance(value, Mapping):
        return None
    parts = {str(k): v for k, v in value.items() if v not in (None, "")}
    return json.dumps(parts, sort_keys=True) if parts else None


def _translate_invalid_request(
    exc: "stripe.InvalidRequestError",
    *,
    resource: str,
    identifier: str,
) -> Exception:
    if getattr(exc, "code", None) == _RESOURCE_MISSING:
        return NotFoundError(
            f"Unknown checkout {resource}",
            detail={f"{resource}_id": identifier},
        )
    return _provider_error(f"Provider rejected {resource} request", exc, **{f"{resource}_id": identifier})


def _provider_error(message: str, exc: "stripe.StripeError", **context: Any) -> ProviderError:
    provider_message = getattr(exc, "user_message", None) or str(exc)
    detail = {key: value for key, value in context.items() if value is not None}
    detail["provider_error_type"] = type(exc).__name__
    return ProviderError(message, detail=detail, provider_message=provider_message)


__all__ = ["PaymentProvider", "StripePaymentProvider", "session_from_stripe"]
