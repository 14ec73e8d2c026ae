"""API routes exposing checkout session creation, price lookup and reconciliation."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..checkout import CheckoutError
from ..schemas.checkout import (
    CreateSessionRequest,
    CreateSessionResponse,
    ErrorResponse,
    PriceLookupRequest,
    PriceLookupResponse,
    ReconcileSessionRequest,
    ReconcileSessionResponse,
)
from ..services.checkout import get_checkout_services

logger = logging.getLogger(__name__)

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
}

router = APIRouter(prefix="/api/checkout", tags=["checkout"], responses=_ERROR_RESPONSES)

UNHANDLED_ERROR_MESSAGE = "Failed to process checkout request"


def checkout_error_handler(request: Request, exc: CheckoutError) -> JSONResponse:
    """Render a :class:`CheckoutError` as ``{"error": ...}`` without leaking internals."""

    if exc.status_code >= 500:
        logger.error(
            "%s %s failed: %s",
            request.method,
            request.url.path,
            exc.message,
            extra=exc.log_context(),
        )
    else:
        logger.info(
            "%s %s rejected: %s",
            request.method,
            request.url.path,
            exc.message,
            extra=exc.log_context(),
        )
    return JSONResponse(status_code=exc.status_code, content=exc.payload)


def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request body schema failures as ``400 {"error": ...}``."""

    errors = exc.errors()
    message = "Invalid request body"
    if errors:
        location = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
        message = f"Invalid request body: {location or 'body'} {errors[0].get('msg', '')}".strip()
    logger.info("%s %s rejected: %s", request.method, request.url.path, message)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("%s %s failed unexpectedly", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": UNHANDLED_ERROR_MESSAGE},
    )


@router.post("/sessions", response_model=CreateSessionResponse)
def create_checkout_session(payload: CreateSessionRequest) -> CreateSessionResponse:
    services = get_checkout_services()
    handle = services.initiator.create_session(
        payload.price_id,
        payload.quantity,
        metadata=payload.metadata,
    )
    return CreateSessionResponse.from_handle(handle)


@router.post("/prices/lookup", response_model=PriceLookupResponse)
def lookup_prices(payload: PriceLookupRequest) -> PriceLookupResponse:
    services = get_checkout_services()
    prices = services.price_resolver.lookup_prices(payload.price_ids)
    return PriceLookupResponse.from_prices(prices)


@router.post("/sessions/reconcile", response_model=ReconcileSessionResponse)
def reconcile_checkout_session(payload: ReconcileSessionRequest) -> ReconcileSessionResponse:
    services = get_checkout_services()
    result = services.reconciler.reconcile(payload.session_id)
    return ReconcileSessionResponse.from_result(result)
