"""
Subscription engine tests
"""

import re
from datetime import date, timedelta
from decimal import Decimal

import pytest

from database.models import (
    Order,
    OrderOrigin,
    OrderStatus,
    PaymentMethod,
    PeriodStatus,
    Periodicity,
    ProductType,
    SubscriptionStatus,
    Transaction,
    TransactionStatus,
)
from database.operations import SubscriptionOperations
from services.charge_provider import generate_transaction_id
from services.exceptions import ConflictError, NotFoundError
from services.subscription_service import generate_subscription_id


@pytest.fixture
def make_order(session_factory):
    """Order with one transaction, as the ledger would record it"""

    def _make(customer, status=OrderStatus.CONFIRMED, transaction_status=TransactionStatus.PAID):
        with session_factory() as session:
            order = Order(
                customer_id=customer.id,
                total=Decimal("49.90"),
                status=status,
                payment_method=PaymentMethod.CARD,
                origin=OrderOrigin.SUBSCRIPTION,
            )
            order.transactions.append(
                Transaction(
                    transaction_id=generate_transaction_id(),
                    status=transaction_status,
                    amount=Decimal("49.90"),
                    currency="BRL",
                )
            )
            session.add(order)
            session.flush()
            return order

    return _make


def test_subscription_id_format():
    subscription_id = generate_subscription_id()
    assert re.fullmatch(r"SUB_\d{13}_[A-Z0-9]{13}", subscription_id)
    assert generate_subscription_id() != subscription_id


class TestCreate:
    def test_create_with_first_period(
        self, session_factory, subscription_service, make_customer, monthly_plan, make_order
    ):
        customer = make_customer()
        order = make_order(customer)

        with session_factory() as session:
            subscription = subscription_service.create(
                session,
                session.merge(customer),
                session.merge(monthly_plan),
                Decimal("39.90"),
                Periodicity.MONTHLY,
                session.merge(order),
            )
            subscription_pk = subscription.id

        with session_factory() as session:
            subscription = SubscriptionOperations.get(session, subscription_pk)
            assert subscription.status == SubscriptionStatus.ACTIVE
            assert subscription.price == Decimal("39.90")
            assert subscription.start_date == date(2026, 1, 15)
            assert subscription.next_billing_date == date(2026, 2, 15)
            assert subscription.description == "Subscription Monthly plan"
            assert [p.price for p in subscription.periods] == [Decimal("39.90")]

    def test_duplicate_active_subscription_conflicts(
        self,
        session_factory,
        subscription_service,
        make_customer,
        monthly_plan,
        make_order,
        make_subscription,
    ):
        customer = make_customer()
        make_subscription(customer, monthly_plan)
        order = make_order(customer)

        with pytest.raises(ConflictError):
            with session_factory() as session:
                subscription_service.create(
                    session,
                    session.merge(customer),
                    session.merge(monthly_plan),
                    monthly_plan.price,
                    Periodicity.MONTHLY,
                    session.merge(order),
                )

    def test_canceled_subscription_does_not_block(
        self,
        session_factory,
        subscription_service,
        make_customer,
        monthly_plan,
        make_order,
        make_subscription,
    ):
        customer = make_customer()
        make_subscription(customer, monthly_plan, status=SubscriptionStatus.CANCELED)
        order = make_order(customer, status=OrderStatus.PENDING, transaction_status=TransactionStatus.CREATED)

        with session_factory() as session:
            subscription = subscription_service.create(
                session,
                session.merge(customer),
                session.merge(monthly_plan),
                monthly_plan.price,
                Periodicity.MONTHLY,
                session.merge(order),
            )
            assert subscription.status == SubscriptionStatus.PENDING
            assert subscription.periods[0].status == PeriodStatus.PENDING


class TestTransactionSync:
    @pytest.mark.parametrize(
        "transaction_status, period_status, subscription_status",
        [
            (TransactionStatus.PAID, PeriodStatus.PAID, SubscriptionStatus.ACTIVE),
            (TransactionStatus.FAILED, PeriodStatus.FAILED, SubscriptionStatus.PAST_DUE),
            (TransactionStatus.REFUSED, PeriodStatus.FAILED, SubscriptionStatus.PAST_DUE),
            (TransactionStatus.PROCESSING, PeriodStatus.PENDING, SubscriptionStatus.PENDING),
        ],
    )
    def test_period_and_subscription_follow_transaction(
        self,
        session_factory,
        subscription_service,
        make_customer,
        monthly_plan,
        make_order,
        make_subscription,
        transaction_status,
        period_status,
        subscription_status,
    ):
        customer = make_customer()
        subscription = make_subscription(
            customer,
            monthly_plan,
            status=SubscriptionStatus.PENDING,
            next_billing_date=date(2026, 1, 1),
        )
        order = make_order(customer, status=OrderStatus.PENDING, transaction_status=TransactionStatus.CREATED)
        with session_factory() as session:
            subscription_service.create_period(
                session, session.merge(subscription), session.merge(order)
            )

        with session_factory() as session:
            result = subscription_service.find_and_update_subscription_by_transaction(
                session, order.transactions[0].transaction_id, transaction_status
            )

        assert result.subscription_id == subscription.id
        assert result.period_status == period_status
        assert result.subscription_status == subscription_status

        with session_factory() as session:
            stored = SubscriptionOperations.get(session, subscription.id)
            assert stored.status == subscription_status
            assert stored.periods[0].status == period_status
            expected_next = (
                date(2026, 2, 15)
                if transaction_status == TransactionStatus.PAID
                else date(2026, 1, 1)
            )
            assert stored.next_billing_date == expected_next

    def test_unrelated_transaction_returns_none(
        self, session_factory, subscription_service, make_customer, make_order
    ):
        order = make_order(make_customer())
        with session_factory() as session:
            assert (
                subscription_service.find_and_update_subscription_by_transaction(
                    session, order.transactions[0].transaction_id, TransactionStatus.PAID
                )
                is None
            )

    def test_updates_every_period_funded_by_the_order(
        self,
        session_factory,
        subscription_service,
        make_customer,
        make_product,
        make_order,
        make_subscription,
    ):
        customer = make_customer()
        order = make_order(customer, status=OrderStatus.PENDING, transaction_status=TransactionStatus.CREATED)
        subscriptions = [
            make_subscription(
                customer,
                make_product("10.00", ProductType.SUBSCRIPTION, periodicity),
                status=SubscriptionStatus.PENDING,
            )
            for periodicity in (Periodicity.MONTHLY, Periodicity.YEARLY)
        ]
        with session_factory() as session:
            for subscription in subscriptions:
                subscription_service.create_period(
                    session, session.merge(subscription), session.merge(order)
                )

        with session_factory() as session:
            result = subscription_service.find_and_update_subscription_by_transaction(
                session, order.transactions[0].transaction_id, TransactionStatus.PAID
            )

        assert result.subscription_id == subscriptions[0].id
        with session_factory() as session:
            for subscription in subscriptions:
                stored = SubscriptionOperations.get(session, subscription.id)
                assert stored.status == SubscriptionStatus.ACTIVE
                assert stored.periods[0].status == PeriodStatus.PAID

    def test_paid_duplicate_of_active_subscription_is_canceled(
        self,
        session_factory,
        subscription_service,
        make_customer,
        monthly_plan,
        make_order,
        make_subscription,
    ):
        customer = make_customer()
        active = make_subscription(customer, monthly_plan)
        duplicate = make_subscription(
            customer,
            monthly_plan,
            status=SubscriptionStatus.PENDING,
            next_billing_date=date(2026, 1, 1),
        )
        order = make_order(customer, status=OrderStatus.PENDING, transaction_status=TransactionStatus.CREATED)
        with session_factory() as session:
            subscription_service.create_period(
                session, session.merge(duplicate), session.merge(order)
            )

        with session_factory() as session:
            result = subscription_service.find_and_update_subscription_by_transaction(
                session, order.transactions[0].transaction_id, TransactionStatus.PAID
            )

        assert result.subscription_id == duplicate.id
        assert result.period_status == PeriodStatus.PAID
        assert result.subscription_status == SubscriptionStatus.CANCELED
        with session_factory() as session:
            stored = SubscriptionOperations.get(session, duplicate.id)
            assert stored.status == SubscriptionStatus.CANCELED
            assert stored.periods[0].status == PeriodStatus.PAID
            assert stored.next_billing_date == date(2026, 1, 1)
            assert SubscriptionOperations.get(session, active.id).status == SubscriptionStatus.ACTIVE


class TestPeriods:
    def test_update_period_status_by_order(
        self,
        session_factory,
        subscription_service,
        make_customer,
        monthly_plan,
        make_order,
        make_subscription,
    ):
        customer = make_customer()
        subscription = make_subscription(customer, monthly_plan)
        order = make_order(customer, status=OrderStatus.PENDING, transaction_status=TransactionStatus.CREATED)
        with session_factory() as session:
            subscription_service.create_period(
                session, session.merge(subscription), session.merge(order)
            )

        with session_factory() as session:
            period = subscription_service.update_period_status(
                session, subscription.id, order.id, PeriodStatus.FAILED
            )
            assert period.status == PeriodStatus.FAILED

        with session_factory() as session:
            assert (
                subscription_service.update_period_status(
                    session, subscription.id, "other-order", PeriodStatus.PAID
                )
                is None
            )

    def test_yearly_period_bounds(
        self,
        session_factory,
        subscription_service,
        make_customer,
        make_product,
        make_order,
        make_subscription,
    ):
        customer = make_customer()
        yearly = make_product("300.00", ProductType.SUBSCRIPTION, Periodicity.YEARLY)
        subscription = make_subscription(customer, yearly)
        order = make_order(customer)

        with session_factory() as session:
            period = subscription_service.create_period(
                session, session.merge(subscription), session.merge(order)
            )
            assert period.start_date == date(2026, 1, 15)
            assert period.end_date == date(2027, 1, 14)
            assert period.price == Decimal("300.00")
            assert period.status == PeriodStatus.PAID


class TestQueries:
    def test_find_due_subscriptions(
        self,
        session_factory,
        subscription_service,
        make_customer,
        make_product,
        make_subscription,
        fixed_today,
    ):
        customer = make_customer()

        def plan():
            return make_product("10.00", ProductType.SUBSCRIPTION, Periodicity.MONTHLY)

        due_today = make_subscription(customer, plan())
        overdue = make_subscription(
            customer, plan(), next_billing_date=fixed_today - timedelta(days=3)
        )
        make_subscription(customer, plan(), next_billing_date=fixed_today + timedelta(days=1))
        make_subscription(customer, plan(), status=SubscriptionStatus.PAST_DUE)
        make_subscription(customer, plan(), status=SubscriptionStatus.PENDING)

        with session_factory() as session:
            due = subscription_service.find_due_subscriptions(session)

        assert [s.id for s in due] == [overdue.id, due_today.id]

    def test_get_subscription(self, subscription_service, make_customer, monthly_plan, make_subscription):
        subscription = make_subscription(make_customer(), monthly_plan)

        response = subscription_service.get_subscription(subscription.id)

        assert response.subscription_id == subscription.subscription_id
        assert response.status == SubscriptionStatus.ACTIVE

        with pytest.raises(NotFoundError):
            subscription_service.get_subscription("missing")

    def test_list_customer_subscriptions(
        self, subscription_service, make_customer, make_product, make_subscription
    ):
        customer = make_customer()
        for periodicity in (Periodicity.MONTHLY, Periodicity.QUARTERLY):
            make_subscription(
                customer, make_product("10.00", ProductType.SUBSCRIPTION, periodicity)
            )
        make_subscription(
            make_customer(),
            make_product("10.00", ProductType.SUBSCRIPTION, Periodicity.MONTHLY),
        )

        listed = subscription_service.list_customer_subscriptions(customer.id)

        assert len(listed) == 2
        assert {s.customer_id for s in listed} == {customer.id}
