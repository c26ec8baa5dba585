"""
Service wiring for route handlers

Each getter builds its service once; tests swap them through
``app.dependency_overrides``.
"""

from functools import lru_cache

from services.cart_service import CartService
from services.charge_provider import get_charge_provider
from services.order_service import OrderService
from services.recurring_billing import RecurringBillingService
from services.subscription_service import SubscriptionService
from services.webhook_service import WebhookService


@lru_cache()
def get_subscription_service() -> SubscriptionService:
    return SubscriptionService()


@lru_cache()
def get_order_service() -> OrderService:
    return OrderService(get_charge_provider(), get_subscription_service())


@lru_cache()
def get_cart_service() -> CartService:
    return CartService(get_order_service())


@lru_cache()
def get_webhook_service() -> WebhookService:
    return WebhookService(get_order_service())


@lru_cache()
def get_billing_service() -> RecurringBillingService:
    return RecurringBillingService(get_order_service(), get_subscription_service())
