"""
Subscription Engine
Owns Subscription and SubscriptionPeriod state
"""

import logging
import random
import string
import time
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from database.models import (
    Customer,
    Order,
    PeriodStatus,
    Periodicity,
    Product,
    Subscription,
    SubscriptionPeriod,
    SubscriptionStatus,
    TransactionStatus,
)
from database.operations import SubscriptionOperations
from database.session import get_session
from models.subscription import SubscriptionResponse, SubscriptionSyncResult
from services.exceptions import ConflictError, NotFoundError
from services.status_mapping import (
    ORDER_TO_PERIOD_STATUS,
    ORDER_TO_SUBSCRIPTION_STATUS,
    TRANSACTION_TO_PERIOD_STATUS,
    TRANSACTION_TO_SUBSCRIPTION_STATUS,
)
from utils import dates
from utils.money import to_money

logger = logging.getLogger(__name__)


def generate_subscription_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=13))
    return f"sub_{int(time.time() * 1000)}_{suffix}".upper()


class SubscriptionService:
    """Subscription lifecycle backed by DB.

    Methods that take a ``session`` join the caller's transaction; the
    ``get_*``/``list_*`` readers open their own.
    """

    def __init__(self, session_factory=get_session):
        self._session_factory = session_factory

    def create(
        self,
        session: Session,
        customer: Customer,
        product: Product,
        price: Decimal,
        periodicity: Periodicity,
        origin_order: Order,
    ) -> Subscription:
        """
        Create a subscription and its first billing period

        Args:
            session: Active session
            customer: Subscriber
            product: Subscription product
            price: Price snapshot taken from the cart item
            periodicity: Billing interval
            origin_order: Checkout order funding the first period

        Returns:
            Subscription with ``periods`` holding the first period

        Raises:
            ConflictError: customer already has an ACTIVE subscription to product
        """
        if SubscriptionOperations.find_active(session, customer.id, product.id):
            raise ConflictError(
                f"Customer already has an active subscription for product {product.id}"
            )

        periodicity = Periodicity(periodicity)
        subscription = Subscription(
            subscription_id=generate_subscription_id(),
            customer=customer,
            product=product,
            price=to_money(price),
            periodicity=periodicity,
            status=ORDER_TO_SUBSCRIPTION_STATUS[origin_order.status],
            next_billing_date=dates.next_billing_date(periodicity),
            start_date=dates.today(),
            description=f"Subscription {product.name or product.id}",
        )
        session.add(subscription)
        session.flush()

        self.create_period(session, subscription, origin_order, price)

        logger.info(
            f"Subscription {subscription.subscription_id} created: "
            f"customer={customer.id}, product={product.id}, "
            f"status={subscription.status.value}, "
            f"next_billing_date={subscription.next_billing_date}"
        )
        return subscription

    def create_period(
        self,
        session: Session,
        subscription: Subscription,
        order: Order,
        price: Optional[Decimal] = None,
    ) -> SubscriptionPeriod:
        """Append the billing period funded (or attempted) by ``order``"""
        start = dates.today()
        period = SubscriptionPeriod(
            subscription=subscription,
            order=order,
            start_date=start,
            end_date=dates.period_end_date(start, subscription.periodicity),
            status=ORDER_TO_PERIOD_STATUS[order.status],
            price=to_money(subscription.price if price is None else price),
            billed_at=start,
        )
        session.add(period)
        session.flush()

        logger.info(
            f"Period {period.start_date}..{period.end_date} added to subscription "
            f"{subscription.subscription_id} (order={order.id}, "
            f"status={period.status.value})"
        )
        return period

    def find_one_or_fail(self, session: Session, subscription_pk: str) -> Subscription:
        subscription = SubscriptionOperations.get(session, subscription_pk)
        if not subscription:
            raise NotFoundError("Subscription not found")
        return subscription

    def update_status(
        self, session: Session, subscription_pk: str, status: SubscriptionStatus
    ) -> Subscription:
        subscription = self.find_one_or_fail(session, subscription_pk)
        subscription.status = SubscriptionStatus(status)
        session.flush()
        return subscription

    def update_next_billing_date(
        self, session: Session, subscription_pk: str
    ) -> Subscription:
        subscription = self.find_one_or_fail(session, subscription_pk)
        subscription.next_billing_date = dates.next_billing_date(
            subscription.periodicity
        )
        session.flush()
        return subscription

    def update_period_status(
        self,
        session: Session,
        subscription_pk: str,
        order_id: str,
        status: PeriodStatus,
    ) -> Optional[SubscriptionPeriod]:
        """Set the status of the period funded by ``order_id``, if any"""
        subscription = self.find_one_or_fail(session, subscription_pk)
        for period in subscription.periods:
            if period.order_id == order_id and period.deleted_at is None:
                period.status = PeriodStatus(status)
                session.flush()
                return period
        return None

    def find_and_update_subscription_by_transaction(
        self,
        session: Session,
        transaction_id: str,
        transaction_status: TransactionStatus,
    ) -> Optional[SubscriptionSyncResult]:
        """
        Bring subscriptions funded by a transaction's order in line with it

        Args:
            session: Active session
            transaction_id: External transaction ID
            transaction_status: Status the transaction now has

        Returns:
            Result for the first linked period, or None when the transaction
            funds no subscription period
        """
        periods = SubscriptionOperations.periods_for_transaction(
            session, transaction_id
        )
        if not periods:
            return None

        transaction_status = TransactionStatus(transaction_status)
        period_status = TRANSACTION_TO_PERIOD_STATUS[transaction_status]
        subscription_status = TRANSACTION_TO_SUBSCRIPTION_STATUS[transaction_status]

        results = []
        for period in periods:
            period.status = period_status
            session.flush()

            subscription = period.subscription
            status = subscription_status
            if status == SubscriptionStatus.ACTIVE and self._has_other_active(
                session, subscription
            ):
                # One ACTIVE subscription per customer and product
                status = SubscriptionStatus.CANCELED
                logger.warning(
                    f"Subscription {subscription.subscription_id} paid by transaction "
                    f"{transaction_id} but customer {subscription.customer_id} already "
                    f"has an active subscription to product {subscription.product_id}; "
                    f"canceling the duplicate"
                )

            self.update_status(session, subscription.id, status)
            if status == SubscriptionStatus.ACTIVE:
                self.update_next_billing_date(session, subscription.id)

            logger.info(
                f"Subscription {subscription.subscription_id} synced with "
                f"transaction {transaction_id}: period={period_status.value}, "
                f"subscription={status.value}"
            )
            results.append(
                SubscriptionSyncResult(
                    subscription_id=subscription.id,
                    period_status=period_status,
                    subscription_status=status,
                )
            )

        return results[0]

    @staticmethod
    def _has_other_active(session: Session, subscription: Subscription) -> bool:
        active = SubscriptionOperations.find_active(
            session, subscription.customer_id, subscription.product_id
        )
        return active is not None and active.id != subscription.id

    def find_due_subscriptions(self, session: Session) -> List[Subscription]:
        """ACTIVE subscriptions whose next billing day is today or earlier"""
        return SubscriptionOperations.list_due(session, dates.today())

    def find_by_customer(self, session: Session, customer_id: str) -> List[Subscription]:
        return SubscriptionOperations.list_for_customer(session, customer_id)

    def get_subscription(self, subscription_pk: str) -> SubscriptionResponse:
        with self._session_factory() as session:
            subscription = self.find_one_or_fail(session, subscription_pk)
            return SubscriptionResponse.model_validate(subscription)

    def list_customer_subscriptions(self, customer_id: str) -> List[SubscriptionResponse]:
        with self._session_factory() as session:
            return [
                SubscriptionResponse.model_validate(s)
                for s in self.find_by_customer(session, customer_id)
            ]
