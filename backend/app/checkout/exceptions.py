"""Error taxonomy for checkout operations."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Mapping, Optional

from fastapi import status


@dataclass(eq=False)
class CheckoutError(Exception):
    """Base class for failures surfaced to checkout API callers.

    ``message`` is the server-side description and is always logged.  Kinds
    that may carry provider or account details define ``public_message`` so
    that callers only ever see a generic explanation.
    """

    message: str
    detail: Optional[Mapping[str, Any]] = None

    code: ClassVar[str] = "checkout_error"
    status_code: ClassVar[int] = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message: ClassVar[Optional[str]] = "Failed to process checkout request"
    retryable: ClassVar[bool] = False

    def __post_init__(self) -> None:
        super().__init__(self.message)

    @property
    def client_message(self) -> str:
        return self.public_message or self.message

    @property
    def payload(self) -> Dict[str, str]:
        """Serialized representation suitable for JSON responses."""

        return {"error": self.client_message}

    def log_context(self) -> Dict[str, Any]:
        context: Dict[str, Any] = {"checkout_error": self.code, "retryable": self.retryable}
        if self.detail:
            context.update(self.detail)
        return context


@dataclass(eq=False)
class ValidationError(CheckoutError):
    """Bad or missing input; raised before the provider is contacted."""

    code: ClassVar[str] = "validation_error"
    status_code: ClassVar[int] = status.HTTP_400_BAD_REQUEST
    public_message: ClassVar[Optional[str]] = None


@dataclass(eq=False)
class NotFoundError(CheckoutError):
    """Unknown or expired checkout session. Terminal."""

    code: ClassVar[str] = "not_found"
    status_code: ClassVar[int] = status.HTTP_404_NOT_FOUND
    public_message: ClassVar[Optional[str]] = None


@dataclass(eq=False)
class ProviderError(CheckoutError):
    """The payment provider was unreachable or rejected the request."""

    provider_message: Optional[str] = None

    code: ClassVar[str] = "provider_error"
    status_code: ClassVar[int] = status.HTTP_502_BAD_GATEWAY
    public_message: ClassVar[Optional[str]] = "Payment provider request failed"
    retryable: ClassVar[bool] = True

    def log_context(self) -> Dict[str, Any]:
        context = super().log_context()
        if self.provider_message:
            context["provider_message"] = self.provider_message
        return context


@dataclass(eq=False)
class ConfigurationError(CheckoutError):
    """A provider price has no mapped plan. Operator facing."""

    code: ClassVar[str] = "configuration_error"
    status_code: ClassVar[int] = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message: ClassVar[Optional[str]] = "Failed to process checkout session"


@dataclass(eq=False)
class AccountResolutionError(CheckoutError):
    """The customer on a completed session has no matching internal account."""

    code: ClassVar[str] = "account_resolution_error"
    status_code: ClassVar[int] = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message: ClassVar[Optional[str]] = "Failed to process checkout session"


__all__ = [
    "AccountResolutionError",
    "CheckoutError",
    "ConfigurationError",
    "NotFoundError",
    "ProviderError",
    "ValidationError",
]
