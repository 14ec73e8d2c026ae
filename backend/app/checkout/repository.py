"""Persistence layer for checkout reconciliation."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterable, Optional

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ...app_context import get_conn
from .models import (
    OrderRecord,
    Plan,
    PlanCategory,
    ProcessedSession,
    Subscription,
)


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None):
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    connection = get_conn()
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


def _row_to_plan(row: dict) -> Plan:
    return Plan(
        plan_id=str(row["id"]),
        name=row["name"],
        category=PlanCategory(row["category"]),
        price_id=row["price_id"],
        profile_limit=int(row.get("profile_limit") or 0),
    )


def _row_to_processed_session(row: dict) -> ProcessedSession:
    return ProcessedSession(
        session_id=row["session_id"],
        account_id=str(row["account_id"]),
        plan_id=str(row["plan_id"]),
        plan_name=row["plan_name"],
        plan_category=PlanCategory(row["plan_category"]),
        subscription_updated=bool(row["subscription_updated"]),
        customer_email=row.get("customer_email"),
        created_at=row["created_at"],
    )


class PostgresCheckoutRepository:
    """Concrete repository persisting checkout reconciliation state in PostgreSQL."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterable[PgCursor]:
        with managed_connection(self._conn) as (connection, managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
                if managed:
                    connection.commit()
            except Exception:
                if managed:
                    connection.rollback()
                raise
            finally:
                cursor.close()

    def get_processed_session(self, session_id: str) -> Optional[ProcessedSession]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM processed_checkout_sessions
                WHERE session_id = %s
                LIMIT 1
                """,
                (session_id,),
            )
            row = cursor.fetchone()
            return _row_to_processed_session(row) if row else None

    def get_plan_by_price_id(self, price_id: str) -> Optional[Plan]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT id, name, category, price_id, profile_limit
                FROM plans
                WHERE price_id = %s
                LIMIT 1
                """,
                (price_id,),
            )
            row = cursor.fetchone()
            return _row_to_plan(row) if row else None

    def account_exists(self, account_id: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute("SELECT 1 FROM accounts WHERE id = %s LIMIT 1", (account_id,))
            return cursor.fetchone() is not None

    def find_account_id_by_email(self, email: str) -> Optional[str]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT id
                FROM accounts
                WHERE lower(email) = lower(%s)
                ORDER BY created_at ASC
                LIMIT 1
                """,
                (email.strip(),),
            )
            row = cursor.fetchone()
            return str(row["id"]) if row else None

    def record_reconciliation(
        self,
        *,
        processed: ProcessedSession,
        subscription: Subscription,
        plan: Plan,
        order: Optional[OrderRecord] = None,
    ) -> bool:
        """Apply a reconciliation atomically, gated on the ledger insert.

        The subscription row is locked first so concurrent calls for the same
        account queue behind each other. When the ledger insert finds an
        existing row every write of this call is rolled back.
        """

        with self._cursor() as cursor:
            cursor.execute("SAVEPOINT checkout_reconcile")
            cursor.execute(
                """
                INSERT INTO subscriptions (
                    account_id,
                    plan_id,
                    status,
                    provider_subscription_id
                )
                VALUES (%(account_id)s, %(plan_id)s, %(status)s, %(provider_subscription_id)s)
                ON CONFLICT (account_id) DO UPDATE SET
                    plan_id = EXCLUDED.plan_id,
                    status = EXCLUDED.status,
                    provider_subscription_id = COALESCE(
                        EXCLUDED.provider_subscription_id,
                        subscriptions.provider_subscription_id
                    ),
                    updated_at = NOW()
                """,
                {
                    "account_id": subscription.account_id,
                    "plan_id": subscription.plan_id,
                    "status": subscription.status.value,
                    "provider_subscription_id": subscription.provider_subscription_id,
                },
            )
            cursor.execute(
                """
                UPDATE profiles
                SET plan_id = %s
                WHERE user_id = %s
                """,
                (plan.plan_id, subscription.account_id),
            )
            if order is not None:
                self._insert_order(cursor, order)

            cursor.execute(
                """
                INSERT INTO processed_checkout_sessions (
                    session_id,
                    account_id,
                    plan_id,
                    plan_name,
                    plan_category,
                    subscription_updated,
                    customer_email,
                    created_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (session_id) DO NOTHING
                RETURNING session_id
                """,
                (
                    processed.session_id,
                    processed.account_id,
                    processed.plan_id,
                    processed.plan_name,
                    processed.plan_category.value,
                    processed.subscription_updated,
                    processed.customer_email,
                    processed.created_at,
                ),
            )
            if cursor.fetchone() is None:
                cursor.execute("ROLLBACK TO SAVEPOINT checkout_reconcile")
                cursor.execute("RELEASE SAVEPOINT checkout_reconcile")
                return False
            cursor.execute("RELEASE SAVEPOINT checkout_reconcile")
            return True

    @staticmethod
    def _insert_order(cursor: PgCursor, order: OrderRecord) -> None:
        cursor.execute(
            """
            INSERT INTO orders (
                user_id,
                order_number,
                status,
                payment_status,
                customer_name,
                customer_email,
                shipping_address
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (order_number) DO NOTHING
            RETURNING id
            """,
            (
                order.account_id,
                order.order_number,
                order.status,
                order.payment_status,
                order.customer_name,
                order.customer_email,
                order.shipping_address,
            ),
        )
        row = cursor.fetchone()
        if not row:
            return
        cursor.execute(
            """
            INSERT INTO order_items (order_id, product_name, quantity, amount, currency)
            VALUES (%s, %s, %s, %s, %s)
            """,
            (row["id"], order.product_name, order.quantity, order.amount, order.currency),
        )


__all__ = ["PostgresCheckoutRepository", "managed_connection"]
