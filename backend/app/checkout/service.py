"""Checkout session initiation, price lookup and exactly-once reconciliation."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Protocol

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
    PriceDetails,
    ProcessedSession,
    ProviderCheckoutSession,
    ReconciliationResult,
    SessionStatus,
    Subscription,
    SubscriptionStatus,
)
from .provider import PaymentProvider

logger = logging.getLogger(__name__)


class CheckoutRepository(Protocol):
    """Persistence operations required by the reconciliation flow."""

    def get_processed_session(self, session_id: str) -> Optional[ProcessedSession]:
        ...

    def get_plan_by_price_id(self, price_id: str) -> Optional[Plan]:
        ...

    def account_exists(self, account_id: str) -> bool:
        ...

    def find_account_id_by_email(self, email: str) -> Optional[str]:
        ...

    def record_reconciliation(
        self,
        *,
        processed: ProcessedSession,
        subscription: Subscription,
        plan: Plan,
        order: Optional[OrderRecord] = None,
    ) -> bool:
        """Apply the subscription upsert, capability grant and order record, then
        insert the ledger row, all in one transaction.

        Returns ``False`` and discards every write when a ledger row for the
        session already exists.
        """


class CheckoutEventLogger(Protocol):
    """Captures structured checkout audit events."""

    def log(self, event: CheckoutAuditEvent) -> None:
        ...


def _require_identifier(value: object, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Missing {field_name}.")
    return value.strip()


@dataclass
class SessionInitiator:
    """Opens checkout sessions against the payment provider."""

    provider: PaymentProvider
    return_url: str
    event_logger: Optional[CheckoutEventLogger] = None

    def create_session(
        self,
        price_id: str,
        quantity: Optional[int] = 1,
        *,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> CheckoutSessionHandle:
        price_id = _require_identifier(price_id, "price_id")
        if quantity is None:
            quantity = 1
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError("quantity must be an integer >= 1")

        try:
            price = self.provider.retrieve_price(price_id)
        except NotFoundError as exc:
            raise ProviderError(
                "Provider does not recognize price",
                detail={"price_id": price_id},
                provider_message=exc.message,
            ) from exc

        mode = CheckoutMode.SUBSCRIPTION if price.recurring else CheckoutMode.PAYMENT
        client_secret = self.provider.create_checkout_session(
            price_id=price_id,
            quantity=quantity,
            mode=mode,
            return_url=self.return_url,
            metadata={str(k): str(v) for k, v in (metadata or {}).items()},
        )
        if self.event_logger is not None:
            self.event_logger.log(
                CheckoutAuditEvent(
                    event_type=CheckoutAuditEventType.SESSION_CREATED,
                    account_id=(metadata or {}).get("user_id"),
                    metadata={"price_id": price_id, "mode": mode.value, "quantity": str(quantity)},
                )
            )
        return CheckoutSessionHandle(client_secret=client_secret)


@dataclass
class PriceCatalogResolver:
    """Resolves provider price identifiers to display metadata.

    Each identifier is fetched independently. Identifiers the provider cannot
    resolve are left out of the result; only a failure of every lookup against
    an unreachable provider is reported as an error.
    """

    provider: PaymentProvider
    max_workers: int = 8

    def lookup_prices(self, price_ids: Iterable[str]) -> Dict[str, PriceDetails]:
        unique_ids = self._normalize(price_ids)

        resolved: Dict[str, PriceDetails] = {}
        provider_failures: List[ProviderError] = []
        workers = max(1, min(self.max_workers, len(unique_ids)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="price-lookup") as executor:
            futures = {executor.submit(self.provider.retrieve_price, price_id): price_id for price_id in unique_ids}
            for future in as_completed(futures):
                price_id = futures[future]
                try:
                    resolved[price_id] = future.result()
                except NotFoundError:
                    logger.warning("Price %s not found at provider", price_id)
                except ProviderError as exc:
                    logger.warning(
                        "Failed to retrieve price %s: %s",
                        price_id,
                        exc.message,
                        extra=exc.log_context(),
                    )
                    provider_failures.append(exc)

        if not resolved and len(provider_failures) == len(unique_ids):
            raise ProviderError(
                "Failed to load prices",
                detail={"price_ids": ",".join(unique_ids)},
                provider_message=provider_failures[0].provider_message or provider_failures[0].message,
            )

        return {price_id: resolved[price_id] for price_id in unique_ids if price_id in resolved}

    @staticmethod
    def _normalize(price_ids: Iterable[str]) -> List[str]:
        if price_ids is None or isinstance(price_ids, (str, bytes)):
            raise ValidationError("price_ids must be a non-empty array")
        unique_ids: List[str] = []
        for price_id in price_ids:
            if not isinstance(price_id, str) or not price_id.strip():
                raise ValidationError("price_ids must contain only non-blank strings")
            normalized = price_id.strip()
            if normalized not in unique_ids:
                unique_ids.append(normalized)
        if not unique_ids:
            raise ValidationError("price_ids must be a non-empty array")
        return unique_ids


@dataclass
class SessionReconciler:
    """Turns a completed checkout session into account state exactly once.

    The ledger insert performed by :meth:`CheckoutRepository.record_reconciliation`
    is the only point of mutual exclusion. Provider reads are safe to repeat,
    and the subscription write is an upsert keyed on the account, so racing
    calls converge on the same final state and the same stored payload.
    """

    repository: CheckoutRepository
    provider: PaymentProvider
    event_logger: Optional[CheckoutEventLogger] = None

    def reconcile(self, session_id: str) -> ReconciliationResult:
        session_id = _require_identifier(session_id, "checkout session_id")

        existing = self.repository.get_processed_session(session_id)
        if existing is not None:
            self._log(CheckoutAuditEventType.RECONCILIATION_REPLAYED, session_id, existing.account_id)
            return existing.to_result()

        session = self.provider.retrieve_checkout_session(session_id)
        if session.status == SessionStatus.EXPIRED:
            raise NotFoundError("Checkout session has expired", detail={"session_id": session_id})
        if session.status == SessionStatus.OPEN:
            return ReconciliationResult.pending(session)

        try:
            plan = self._resolve_plan(session)
            account_id = self._resolve_account(session)
        except CheckoutError as exc:
            logger.error(
                "Checkout session %s could not be reconciled: %s",
                session_id,
                exc.message,
                extra=exc.log_context(),
            )
            self._log(
                CheckoutAuditEventType.RECONCILIATION_FAILED,
                session_id,
                None,
                {"reason": exc.code},
            )
            raise

        processed = ProcessedSession(
            session_id=session.session_id,
            account_id=account_id,
            plan_id=plan.plan_id,
            plan_name=plan.name,
            plan_category=plan.category,
            subscription_updated=True,
            customer_email=session.customer_email,
        )
        subscription = Subscription(
            account_id=account_id,
            plan_id=plan.plan_id,
            status=SubscriptionStatus.ACTIVE,
            provider_subscription_id=session.subscription_ref,
        )
        order = OrderRecord.for_session(session, account_id=account_id, plan=plan)

        won = self.repository.record_reconciliation(
            processed=processed,
            subscription=subscription,
            plan=plan,
            order=order,
        )
        if not won:
            winner = self.repository.get_processed_session(session_id)
            if winner is None:
                raise CheckoutError(
                    "Ledger insert conflicted but no ledger row exists",
                    detail={"session_id": session_id},
                )
            logger.info("Checkout session %s already reconciled by a concurrent call", session_id)
            self._log(CheckoutAuditEventType.RECONCILIATION_REPLAYED, session_id, winner.account_id)
            return winner.to_result()

        self._log(
            CheckoutAuditEventType.SUBSCRIPTION_ACTIVATED,
            session_id,
            account_id,
            {"plan_id": plan.plan_id},
        )
        return processed.to_result()

    def _resolve_plan(self, session: ProviderCheckoutSession) -> Plan:
        if not session.price_id:
            raise ConfigurationError(
                "Completed checkout session has no line-item price",
                detail={"session_id": session.session_id},
            )
        plan = self.repository.get_plan_by_price_id(session.price_id)
        if plan is None:
            raise ConfigurationError(
                "No plan is mapped to the purchased price",
                detail={"session_id": session.session_id, "price_id": session.price_id},
            )
        return plan

    def _resolve_account(self, session: ProviderCheckoutSession) -> str:
        hint = session.account_hint
        if hint and self.repository.account_exists(hint):
            return hint
        if session.customer_email:
            account_id = self.repository.find_account_id_by_email(session.customer_email)
            if account_id:
                return account_id
        raise AccountResolutionError(
            "No internal account matches the checkout customer",
            detail={
                "session_id": session.session_id,
                "customer_email": session.customer_email,
                "account_hint": hint,
            },
        )

    def _log(
        self,
        event_type: CheckoutAuditEventType,
        session_id: str,
        account_id: Optional[str],
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        if self.event_logger is None:
            return
        self.event_logger.log(
            CheckoutAuditEvent(
                event_type=event_type,
                session_id=session_id,
                account_id=account_id,
                metadata=metadata or {},
            )
        )


__all__ = [
    "CheckoutEventLogger",
    "CheckoutRepository",
    "PriceCatalogResolver",
    "SessionInitiator",
    "SessionReconciler",
]
