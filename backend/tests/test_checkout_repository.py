from datetime import datetime, timezone

from backend.app.checkout import (
    OrderRecord,
    Plan,
    PlanCategory,
    ProcessedSession,
    Subscription,
    SubscriptionStatus,
)
from backend.app.checkout.repository import PostgresCheckoutRepository


class FakeCursor:
    def __init__(self, *, fetchone_results=None):
        self.fetchone_results = list(fetchone_results or [])
        self.execute_calls = []
        self.closed = False

    def execute(self, query, params=None):
        self.execute_calls.append((" ".join(query.split()), params))

    def fetchone(self):
        if not self.fetchone_results:
            raise AssertionError("Unexpected fetchone")
        return self.fetchone_results.pop(0)

    def close(self):
        self.closed = True

    @property
    def statements(self):
        return [query for query, _ in self.execute_calls]


class FakeConnection:
    def __init__(self, *cursors):
        self._cursors = list(cursors)
        self.cursor_calls = []
        self.commits = 0

    def cursor(self, *args, **kwargs):
        self.cursor_calls.append((args, kwargs))
        if not self._cursors:
            raise AssertionError("No cursors configured")
        return self._cursors.pop(0)

    def commit(self):
        self.commits += 1


PLAN = Plan(plan_id="plan_pro", name="Pro", category=PlanCategory.BUSINESS, price_id="price_pro", profile_limit=5)


def _reconciliation(session_id="cs_1"):
    processed = ProcessedSession(
        session_id=session_id,
        account_id="acct_1",
        plan_id=PLAN.plan_id,
        plan_name=PLAN.name,
        plan_category=PLAN.category,
        customer_email="a@b.com",
        created_at=datetime(2025, 1, 2, tzinfo=timezone.utc),
    )
    subscription = Subscription(
        account_id="acct_1",
        plan_id=PLAN.plan_id,
        status=SubscriptionStatus.ACTIVE,
        provider_subscription_id="sub_1",
    )
    order = OrderRecord(
        order_number=session_id,
        account_id="acct_1",
        status="processing",
        payment_status="paid",
        customer_email="a@b.com",
        shipping_address='{"city": "London"}',
        product_name=PLAN.name,
        amount=1999,
        currency="usd",
    )
    return {"processed": processed, "subscription": subscription, "plan": PLAN, "order": order}


def _kinds(statements):
    kinds = []
    for statement in statements:
        if statement.startswith("INSERT INTO"):
            kinds.append(statement.split()[2])
        elif statement.startswith("UPDATE"):
            kinds.append(f"update {statement.split()[1]}")
        else:
            kinds.append(statement)
    return kinds


def test_record_reconciliation_commits_all_writes_when_ledger_insert_wins():
    cursor = FakeCursor(fetchone_results=[{"id": 10}, {"session_id": "cs_1"}])
    conn = FakeConnection(cursor)
    repository = PostgresCheckoutRepository(conn=conn)

    won = repository.record_reconciliation(**_reconciliation())

    assert won is True
    assert _kinds(cursor.statements) == [
        "SAVEPOINT checkout_reconcile",
        "subscriptions",
        "update profiles",
        "orders",
        "order_items",
        "processed_checkout_sessions",
        "RELEASE SAVEPOINT checkout_reconcile",
    ]
    assert "ON CONFLICT (session_id) DO NOTHING RETURNING session_id" in cursor.statements[5]
    order_params = cursor.execute_calls[3][1]
    assert order_params[1] == "cs_1"
    assert order_params[-1] == '{"city": "London"}'
    assert cursor.execute_calls[4][1] == (10, "Pro", 1, 1999, "usd")
    assert cursor.closed is True
    # Caller-owned connections are committed by the caller.
    assert conn.commits == 0


def test_record_reconciliation_rolls_back_when_session_already_recorded():
    cursor = FakeCursor(fetchone_results=[{"id": 10}, None])
    repository = PostgresCheckoutRepository(conn=FakeConnection(cursor))

    won = repository.record_reconciliation(**_reconciliation())

    assert won is False
    kinds = _kinds(cursor.statements)
    assert kinds[-3:] == [
        "processed_checkout_sessions",
        "ROLLBACK TO SAVEPOINT checkout_reconcile",
        "RELEASE SAVEPOINT checkout_reconcile",
    ]
    rollback_at = kinds.index("ROLLBACK TO SAVEPOINT checkout_reconcile")
    for write in ("subscriptions", "update profiles", "orders"):
        assert kinds.index(write) < rollback_at


def test_record_reconciliation_skips_items_for_existing_order():
    cursor = FakeCursor(fetchone_results=[None, {"session_id": "cs_1"}])
    repository = PostgresCheckoutRepository(conn=FakeConnection(cursor))

    won = repository.record_reconciliation(**_reconciliation())

    assert won is True
    kinds = _kinds(cursor.statements)
    assert "orders" in kinds
    assert "order_items" not in kinds
    assert kinds[-1] == "RELEASE SAVEPOINT checkout_reconcile"


def test_record_reconciliation_without_order_writes_no_order_rows():
    cursor = FakeCursor(fetchone_results=[{"session_id": "cs_1"}])
    repository = PostgresCheckoutRepository(conn=FakeConnection(cursor))
    values = _reconciliation()
    values["order"] = None

    assert repository.record_reconciliation(**values) is True
    assert _kinds(cursor.statements) == [
        "SAVEPOINT checkout_reconcile",
        "subscriptions",
        "update profiles",
        "processed_checkout_sessions",
        "RELEASE SAVEPOINT checkout_reconcile",
    ]


def test_get_processed_session_maps_ledger_row():
    created_at = datetime(2025, 1, 2, tzinfo=timezone.utc)
    cursor = FakeCursor(
        fetchone_results=[
            {
                "session_id": "cs_1",
                "account_id": "acct_1",
                "plan_id": "plan_pro",
                "plan_name": "Pro",
                "plan_category": "business",
                "subscription_updated": True,
                "customer_email": "a@b.com",
                "created_at": created_at,
            }
        ]
    )
    repository = PostgresCheckoutRepository(conn=FakeConnection(cursor))

    processed = repository.get_processed_session("cs_1")

    assert processed.plan_category == PlanCategory.BUSINESS
    assert processed.created_at == created_at
    assert cursor.execute_calls[0][1] == ("cs_1",)


def test_find_account_id_by_email_trims_input():
    cursor = FakeCursor(fetchone_results=[{"id": 7}])
    repository = PostgresCheckoutRepository(conn=FakeConnection(cursor))

    assert repository.find_account_id_by_email("  A@B.com ") == "7"
    assert "lower(email) = lower(%s)" in cursor.statements[0]
    assert cursor.execute_calls[0][1] == ("A@B.com",)
