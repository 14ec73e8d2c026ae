"""API schemas for checkout endpoints."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt

from ..checkout import (
    CheckoutSessionHandle,
    PlanCategory,
    PriceDetails,
    ReconciliationResult,
    ReconciliationStatus,
)


class CreateSessionRequest(BaseModel):
    price_id: Optional[str] = Field(alias="priceId", default=None)
    quantity: Optional[StrictInt] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)


class CreateSessionResponse(BaseModel):
    client_secret: str = Field(alias="clientSecret")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_handle(cls, handle: CheckoutSessionHandle) -> "CreateSessionResponse":
        return cls(client_secret=handle.client_secret)


class PriceLookupRequest(BaseModel):
    # Element types are checked by the resolver so that bad input yields a
    # validation error rather than a schema error.
    price_ids: Optional[List[Any]] = Field(alias="priceIds", default=None)

    model_config = ConfigDict(populate_by_name=True)


class PriceEntry(BaseModel):
    currency: str
    unit_amount: Optional[int] = Field(alias="unitAmount", default=None)

    model_config = ConfigDict(populate_by_name=True)


class PriceLookupResponse(BaseModel):
    prices: Dict[str, PriceEntry]

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_prices(cls, prices: Dict[str, PriceDetails]) -> "PriceLookupResponse":
        return cls(
            prices={
                price_id: PriceEntry(currency=price.currency, unit_amount=price.unit_amount)
                for price_id, price in prices.items()
            }
        )


class ReconcileSessionRequest(BaseModel):
    session_id: Optional[str] = Field(alias="sessionId", default=None)

    model_config = ConfigDict(populate_by_name=True)


class ReconcileSessionResponse(BaseModel):
    status: ReconciliationStatus
    subscription_updated: bool = Field(alias="subscriptionUpdated")
    plan_name: Optional[str] = Field(alias="planName", default=None)
    plan_category: Optional[PlanCategory] = Field(alias="planCategory", default=None)
    customer_email: Optional[str] = Field(alias="customerEmail", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_result(cls, result: ReconciliationResult) -> "ReconcileSessionResponse":
        return cls(
            status=result.status,
            subscription_updated=result.subscription_updated,
            plan_name=result.plan_name,
            plan_category=result.plan_category,
            customer_email=result.customer_email,
        )


class ErrorResponse(BaseModel):
    error: str
