"""
Shared fixtures: in-memory database, scripted charge provider, factories
"""

import itertools
import os
from datetime import date
from decimal import Decimal

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("BILLING_SCHEDULER_ENABLED", "false")

import pytest
from sqlalchemy.pool import StaticPool

from database.models import (
    Base,
    Cart,
    CartItem,
    CartStatus,
    Customer,
    Periodicity,
    Product,
    ProductType,
    Subscription,
    SubscriptionStatus,
)
from database.session import create_db_engine, make_session_factory
from services.cart_service import CartService
from services.charge_provider import (
    STATUS_MESSAGES,
    ChargeProvider,
    ChargeResponse,
    ChargeStatus,
    generate_transaction_id,
)
from services.order_service import OrderService
from services.recurring_billing import RecurringBillingService
from services.subscription_service import SubscriptionService, generate_subscription_id
from services.webhook_service import WebhookService
from utils import dates

TODAY = date(2026, 1, 15)


class FakeChargeProvider(ChargeProvider):
    """Charge provider that answers from a script"""

    def __init__(self):
        self.statuses = []
        self.default = ChargeStatus.PAID
        self.error = None
        self.requests = []

    def script(self, *statuses):
        self.statuses.extend(statuses)

    def charge(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        status = self.statuses.pop(0) if self.statuses else self.default
        return ChargeResponse(
            success=status not in (ChargeStatus.REFUSED, ChargeStatus.FAILED),
            transaction_id=generate_transaction_id("TEST"),
            status=status,
            message=STATUS_MESSAGES[status],
            processing_time=1,
        )


@pytest.fixture(autouse=True)
def fixed_today(monkeypatch):
    monkeypatch.setattr(dates, "today", lambda: TODAY)
    return TODAY


@pytest.fixture
def engine():
    engine = create_db_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def charge_provider():
    return FakeChargeProvider()


@pytest.fixture
def subscription_service(session_factory):
    return SubscriptionService(session_factory=session_factory)


@pytest.fixture
def order_service(charge_provider, subscription_service, session_factory):
    return OrderService(
        charge_provider,
        subscription_service,
        session_factory=session_factory,
        currency="BRL",
        charge_timeout=5,
    )


@pytest.fixture
def webhook_service(order_service, session_factory):
    return WebhookService(order_service, session_factory=session_factory)


@pytest.fixture
def billing_service(order_service, subscription_service, session_factory):
    return RecurringBillingService(
        order_service, subscription_service, session_factory=session_factory
    )


@pytest.fixture
def cart_service(order_service, session_factory):
    return CartService(order_service, session_factory=session_factory)


@pytest.fixture
def make_customer(session_factory):
    counter = itertools.count(1)

    def _make(name=None, email=None):
        n = next(counter)
        with session_factory() as session:
            customer = Customer(
                name=name or f"Customer {n}",
                email=email or f"customer{n}@example.com",
            )
            session.add(customer)
            session.flush()
            return customer

    return _make


@pytest.fixture
def make_product(session_factory):
    def _make(price="100.00", type=ProductType.SINGLE, periodicity=None, name=None):
        with session_factory() as session:
            product = Product(
                name=name or f"{type.value} product",
                type=type,
                price=Decimal(price),
                periodicity=periodicity,
            )
            session.add(product)
            session.flush()
            return product

    return _make


@pytest.fixture
def monthly_plan(make_product):
    return make_product(
        "49.90",
        type=ProductType.SUBSCRIPTION,
        periodicity=Periodicity.MONTHLY,
        name="Monthly plan",
    )


@pytest.fixture
def make_cart(session_factory):
    """Cart holding one unit of each product, closed by default"""

    def _make(customer, *products, status=CartStatus.CLOSED):
        with session_factory() as session:
            cart = Cart(customer_id=customer.id, status=status, total=0)
            for product in products:
                cart.items.append(
                    CartItem(
                        product_id=product.id,
                        quantity=1,
                        price=product.price,
                        periodicity=product.periodicity,
                    )
                )
            cart.total = sum((Decimal(p.price) for p in products), Decimal("0"))
            session.add(cart)
            session.flush()
            return cart

    return _make


@pytest.fixture
def make_subscription(session_factory):
    def _make(
        customer,
        product,
        status=SubscriptionStatus.ACTIVE,
        next_billing_date=TODAY,
    ):
        with session_factory() as session:
            subscription = Subscription(
                subscription_id=generate_subscription_id(),
                customer_id=customer.id,
                product_id=product.id,
                price=product.price,
                periodicity=product.periodicity or Periodicity.MONTHLY,
                status=status,
                next_billing_date=next_billing_date,
                start_date=TODAY,
                description=f"Subscription {product.name}",
            )
            session.add(subscription)
            session.flush()
            return subscription

    return _make
