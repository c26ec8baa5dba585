"""
Recurring billing and scheduler tests
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from database.models import (
    Customer,
    OrderOrigin,
    OrderStatus,
    PaymentMethod,
    PeriodStatus,
    SubscriptionStatus,
    TransactionStatus,
)
from database.operations import OrderOperations, SubscriptionOperations
from services.charge_provider import ChargeStatus
from services.recurring_billing import BillingScheduler, seconds_until_next_run


class TestProcessDueSubscriptions:
    def test_paid_cycle_advances_subscription(
        self,
        session_factory,
        billing_service,
        charge_provider,
        make_customer,
        monthly_plan,
        make_subscription,
    ):
        subscription = make_subscription(make_customer(), monthly_plan)

        results = billing_service.process_due_subscriptions()

        assert len(results) == 1
        result = results[0]
        assert result.success
        assert result.subscription_id == subscription.id
        assert result.error is None

        request = charge_provider.requests[0]
        assert request.payment_method == PaymentMethod.CARD
        assert request.reference == subscription.subscription_id
        assert request.amount == Decimal("49.90")

        with session_factory() as session:
            stored = SubscriptionOperations.get(session, subscription.id)
            assert stored.status == SubscriptionStatus.ACTIVE
            assert stored.next_billing_date == date(2026, 2, 15)
            assert len(stored.periods) == 1
            assert stored.periods[0].status == PeriodStatus.PAID
            assert stored.periods[0].order_id == result.order_id

            order = OrderOperations.get(session, result.order_id)
            assert order.origin == OrderOrigin.SUBSCRIPTION
            assert order.status == OrderStatus.CONFIRMED
            assert order.transactions[0].transaction_id == result.transaction_id
            assert order.transactions[0].status == TransactionStatus.PAID

    def test_refused_cycle_marks_past_due_and_keeps_date(
        self,
        session_factory,
        billing_service,
        charge_provider,
        make_customer,
        monthly_plan,
        make_subscription,
    ):
        subscription = make_subscription(make_customer(), monthly_plan)
        charge_provider.script(ChargeStatus.REFUSED)

        results = billing_service.process_due_subscriptions()

        assert not results[0].success
        assert results[0].error is None
        with session_factory() as session:
            stored = SubscriptionOperations.get(session, subscription.id)
            assert stored.status == SubscriptionStatus.PAST_DUE
            assert stored.next_billing_date == date(2026, 1, 15)
            assert stored.periods[0].status == PeriodStatus.FAILED
            assert OrderOperations.get(session, results[0].order_id).status == OrderStatus.FAILED

    def test_past_due_subscription_is_not_retried_automatically(
        self, billing_service, charge_provider, make_customer, monthly_plan, make_subscription
    ):
        make_subscription(make_customer(), monthly_plan)
        charge_provider.script(ChargeStatus.REFUSED)
        billing_service.process_due_subscriptions()

        assert billing_service.process_due_subscriptions() == []
        assert len(charge_provider.requests) == 1

    def test_only_due_active_subscriptions_are_billed(
        self, billing_service, charge_provider, make_customer, monthly_plan, make_subscription, fixed_today
    ):
        customer = make_customer()
        make_subscription(customer, monthly_plan, next_billing_date=fixed_today + timedelta(days=1))
        make_subscription(make_customer(), monthly_plan, status=SubscriptionStatus.PENDING)
        make_subscription(make_customer(), monthly_plan, status=SubscriptionStatus.CANCELED)

        assert billing_service.process_due_subscriptions() == []
        assert charge_provider.requests == []

    def test_bills_each_due_active_subscription(
        self,
        session_factory,
        billing_service,
        charge_provider,
        make_customer,
        monthly_plan,
        make_subscription,
        fixed_today,
    ):
        paying = make_subscription(
            make_customer(), monthly_plan, next_billing_date=fixed_today - timedelta(days=1)
        )
        refused = make_subscription(make_customer(), monthly_plan)
        canceled = make_subscription(
            make_customer(), monthly_plan, status=SubscriptionStatus.CANCELED
        )
        charge_provider.script(ChargeStatus.PAID, ChargeStatus.REFUSED)

        results = billing_service.process_due_subscriptions()

        assert [(r.subscription_id, r.success) for r in results] == [
            (paying.id, True),
            (refused.id, False),
        ]
        assert len(charge_provider.requests) == 2
        with session_factory() as session:
            assert SubscriptionOperations.get(session, paying.id).status == SubscriptionStatus.ACTIVE
            assert SubscriptionOperations.get(session, refused.id).status == SubscriptionStatus.PAST_DUE
            untouched = SubscriptionOperations.get(session, canceled.id)
            assert untouched.status == SubscriptionStatus.CANCELED
            assert untouched.periods == []
            assert untouched.next_billing_date == fixed_today

    def test_one_failure_does_not_stop_the_run(
        self,
        session_factory,
        billing_service,
        make_customer,
        monthly_plan,
        make_subscription,
        fixed_today,
    ):
        gone = make_customer()
        broken = make_subscription(
            gone, monthly_plan, next_billing_date=fixed_today - timedelta(days=1)
        )
        healthy = make_subscription(make_customer(), monthly_plan)
        with session_factory() as session:
            session.get(Customer, gone.id).deleted_at = datetime.utcnow()

        results = billing_service.process_due_subscriptions()

        assert [r.subscription_id for r in results] == [broken.id, healthy.id]
        assert not results[0].success
        assert "Customer not found" in results[0].error
        assert results[1].success

        with session_factory() as session:
            stored = SubscriptionOperations.get(session, broken.id)
            assert stored.status == SubscriptionStatus.ACTIVE
            assert stored.periods == []


class TestSecondsUntilNextRun:
    def test_later_today(self):
        now = datetime(2026, 1, 15, 23, 0, tzinfo=ZoneInfo("UTC"))
        assert seconds_until_next_run(now, 0, "UTC") == 3600

    def test_exactly_on_the_hour_waits_a_day(self):
        now = datetime(2026, 1, 15, 0, 0, tzinfo=ZoneInfo("UTC"))
        assert seconds_until_next_run(now, 0, "UTC") == 86400

    def test_local_timezone(self):
        # 02:00 UTC is 23:00 the previous day in Sao Paulo
        now = datetime(2026, 1, 15, 2, 0, tzinfo=ZoneInfo("UTC"))
        assert seconds_until_next_run(now, 0, "America/Sao_Paulo") == 3600


class TestBillingScheduler:
    @pytest.mark.asyncio
    async def test_run_once_bills_due_subscriptions(
        self, billing_service, make_customer, monthly_plan, make_subscription
    ):
        make_subscription(make_customer(), monthly_plan)
        scheduler = BillingScheduler(billing_service, run_hour=0, timezone="UTC")

        results = await scheduler.run_once()

        assert [r.success for r in results] == [True]

    @pytest.mark.asyncio
    async def test_start_and_stop(self, billing_service):
        scheduler = BillingScheduler(billing_service, run_hour=3, timezone="UTC")

        scheduler.start()
        assert scheduler.running
        scheduler.start()

        await scheduler.stop()
        assert not scheduler.running
