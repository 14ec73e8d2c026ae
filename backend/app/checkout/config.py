"""Checkout configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional
import os

DEFAULT_STRIPE_API_VERSION = "2025-08-27.basil"


@dataclass(frozen=True)
class CheckoutConfig:
    """Configuration for the payment provider and checkout return flow."""

    stripe_secret_key: Optional[str]
    stripe_api_version: str
    app_domain: str
    return_path: str
    price_lookup_max_workers: int

    @property
    def provider_configured(self) -> bool:
        return bool(self.stripe_secret_key)

    @property
    def return_url(self) -> str:
        """Return URL template; the provider substitutes the session id."""

        return f"{self.app_domain}{self.return_path}?session_id={{CHECKOUT_SESSION_ID}}"


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def load_checkout_config(env: Optional[Mapping[str, str]] = None) -> CheckoutConfig:
    """Load :class:`CheckoutConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    secret_key = (
        env_mapping.get("STRIPE_SECRET_KEY")
        or env_mapping.get("STRIPE_LIVE_SECRET_KEY")
        or None
    )
    api_version = env_mapping.get("STRIPE_API_VERSION") or DEFAULT_STRIPE_API_VERSION

    app_domain = (
        env_mapping.get("APP_DOMAIN")
        or env_mapping.get("NEXT_PUBLIC_DOMAIN")
        or "http://localhost:3000"
    )
    return_path = env_mapping.get("CHECKOUT_RETURN_PATH") or "/orders/confirmation"
    if not return_path.startswith("/"):
        return_path = f"/{return_path}"

    max_workers = max(1, _to_int(env_mapping.get("PRICE_LOOKUP_MAX_WORKERS"), default=8))

    return CheckoutConfig(
        stripe_secret_key=secret_key,
        stripe_api_version=api_version,
        app_domain=app_domain.rstrip("/"),
        return_path=return_path,
        price_lookup_max_workers=max_workers,
    )
