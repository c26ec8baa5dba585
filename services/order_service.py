"""
Order/Transaction Ledger
Creates orders from closed carts and billing cycles, records one
Transaction per charge attempt and keeps linked subscriptions in sync
"""

import logging
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from config import settings
from database.models import (
    Cart,
    CartStatus,
    Customer,
    Order,
    OrderOrigin,
    OrderStatus,
    PaymentMethod,
    ProductType,
    Transaction,
    TransactionStatus,
)
from database.operations import (
    CartOperations,
    CustomerOperations,
    OrderOperations,
    TransactionOperations,
)
from database.session import get_session
from models.order import OrderResponse
from services.charge_provider import (
    ChargeProvider,
    ChargeRequest,
    ChargeResponse,
    charge_with_timeout,
)
from services.exceptions import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    StaleTransactionError,
)
from services.status_mapping import (
    ACTIVE_TRANSACTION_STATUSES,
    SUBSCRIBABLE_CHARGE_STATUSES,
    order_status_for_charge,
    transaction_status_for_charge,
)
from services.subscription_service import SubscriptionService
from utils.money import to_money

logger = logging.getLogger(__name__)


class OrderService:
    """Order creation, charge recording and status updates backed by DB."""

    def __init__(
        self,
        charge_provider: ChargeProvider,
        subscription_service: SubscriptionService,
        session_factory=get_session,
        currency: Optional[str] = None,
        charge_timeout: Optional[float] = None,
    ):
        self._charge_provider = charge_provider
        self._subscriptions = subscription_service
        self._session_factory = session_factory
        self.currency = currency or settings.CURRENCY
        self.charge_timeout = charge_timeout

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    def create_order(
        self,
        session: Session,
        customer_id: str,
        cart_id: str,
        payment_method: PaymentMethod,
    ) -> Tuple[Order, List[str]]:
        """
        Charge a closed cart and record the outcome

        Re-running checkout on the same cart reuses its Order row.

        Args:
            session: Active session (the caller's atomic scope)
            customer_id: Customer paying
            cart_id: Closed cart being checked out
            payment_method: card, slipbank or pix

        Returns:
            (order, ids of subscriptions created for subscription items)

        Raises:
            NotFoundError: customer or cart missing, or cart owned by someone else
            BadRequestError: cart is open, empty or has a non-positive total
            ConflictError: a charge for this order is still CREATED/PROCESSING,
                or the order is already paid
        """
        payment_method = PaymentMethod(payment_method)
        customer, cart = self._validate_order_creation(session, customer_id, cart_id)

        order = self._find_or_create_order(session, customer, cart, payment_method)
        if self._has_active_transaction(order):
            raise ConflictError("Order already has an active transaction")
        if self._is_paid(order):
            raise ConflictError("Order is already paid")

        order.payment_method = payment_method
        session.flush()

        charge = self._charge(
            ChargeRequest(
                amount=to_money(cart.total),
                currency=self.currency,
                payment_method=payment_method,
                reference=cart.id,
                customer_email=customer.email,
                customer_name=customer.name,
            )
        )

        order.status = order_status_for_charge(charge.status)
        self._record_transaction(session, order, charge, cart.total)

        subscription_ids = self._create_subscriptions_for_cart(
            session, cart, customer, order, charge
        )

        logger.info(
            f"Order {order.id} for cart {cart.id}: charge={charge.status.value}, "
            f"order={order.status.value}, subscriptions={len(subscription_ids)}"
        )
        return order, subscription_ids

    def _validate_order_creation(
        self, session: Session, customer_id: str, cart_id: str
    ) -> Tuple[Customer, Cart]:
        customer = CustomerOperations.get(session, customer_id)
        if not customer:
            raise NotFoundError("Customer not found")

        cart = CartOperations.get(session, cart_id)
        if not cart:
            raise NotFoundError("Cart not found")

        if cart.customer_id != customer_id:
            raise NotFoundError("Cart does not belong to customer")

        if cart.status != CartStatus.CLOSED:
            raise BadRequestError("Cart must be closed before checkout")

        if not cart.items:
            raise BadRequestError("Cannot check out a cart without items")

        if to_money(cart.total) <= 0:
            raise BadRequestError("Cannot check out a cart with zero or negative total")

        return customer, cart

    def _find_or_create_order(
        self,
        session: Session,
        customer: Customer,
        cart: Cart,
        payment_method: PaymentMethod,
    ) -> Order:
        existing = OrderOperations.get_by_cart(session, cart.id)
        if existing:
            logger.info(f"Reusing order {existing.id} for cart {cart.id}")
            return existing

        order = Order(
            customer=customer,
            cart=cart,
            total=to_money(cart.total),
            status=OrderStatus.PENDING,
            payment_method=payment_method,
            origin=OrderOrigin.CART,
        )
        session.add(order)
        return order

    @staticmethod
    def _has_active_transaction(order: Order) -> bool:
        return any(
            t.status in ACTIVE_TRANSACTION_STATUSES and t.deleted_at is None
            for t in order.transactions
        )

    @staticmethod
    def _is_paid(order: Order) -> bool:
        return order.status == OrderStatus.CONFIRMED or any(
            t.status == TransactionStatus.PAID and t.deleted_at is None
            for t in order.transactions
        )

    def _charge(self, request: ChargeRequest) -> ChargeResponse:
        return charge_with_timeout(
            self._charge_provider, request, timeout=self.charge_timeout
        )

    def _record_transaction(
        self,
        session: Session,
        order: Order,
        charge: ChargeResponse,
        amount: Decimal,
    ) -> Transaction:
        transaction = Transaction(
            transaction_id=charge.transaction_id,
            status=transaction_status_for_charge(charge.status),
            amount=to_money(amount),
            currency=self.currency,
            message=charge.message,
            processing_time=charge.processing_time,
            order=order,
        )
        session.add(transaction)
        session.flush()
        return transaction

    def _create_subscriptions_for_cart(
        self,
        session: Session,
        cart: Cart,
        customer: Customer,
        order: Order,
        charge: ChargeResponse,
    ) -> List[str]:
        if charge.status not in SUBSCRIBABLE_CHARGE_STATUSES:
            return []

        subscription_items = [
            item
            for item in cart.items
            if item.product is not None
            and item.product.type == ProductType.SUBSCRIPTION
            and (item.periodicity or item.product.periodicity)
        ]

        subscription_ids = []
        for item in subscription_items:
            # A savepoint per item: one bad item must not sink the order
            savepoint = session.begin_nested()
            try:
                subscription = self._subscriptions.create(
                    session,
                    customer,
                    item.product,
                    item.price,
                    item.periodicity or item.product.periodicity,
                    order,
                )
                savepoint.commit()
                subscription_ids.append(subscription.id)
            except Exception as e:
                savepoint.rollback()
                logger.warning(
                    f"Failed to create subscription for product {item.product_id}: {str(e)}"
                )

        return subscription_ids

    # ------------------------------------------------------------------
    # Recurring billing
    # ------------------------------------------------------------------

    def create_recurring_order(
        self,
        session: Session,
        customer_id: str,
        amount: Decimal,
        payment_method: PaymentMethod,
        charge: ChargeResponse,
    ) -> Tuple[Order, Transaction]:
        """
        Record one billing cycle as a new SUBSCRIPTION-origin order

        Args:
            session: Active session
            customer_id: Subscriber
            amount: Subscription price snapshot
            payment_method: Method the cycle was charged with
            charge: Outcome already obtained from the charge provider

        Returns:
            (order, transaction)
        """
        customer = CustomerOperations.get(session, customer_id)
        if not customer:
            raise NotFoundError("Customer not found")

        order = Order(
            customer=customer,
            total=to_money(amount),
            status=order_status_for_charge(charge.status),
            payment_method=PaymentMethod(payment_method),
            origin=OrderOrigin.SUBSCRIPTION,
        )
        session.add(order)
        session.flush()

        transaction = self._record_transaction(session, order, charge, amount)

        logger.info(
            f"Recurring order {order.id} recorded for customer {customer_id}: "
            f"order={order.status.value}, transaction={transaction.transaction_id}"
        )
        return order, transaction

    def charge(self, request: ChargeRequest) -> ChargeResponse:
        """Charge through the configured provider with the timeout fallback"""
        return self._charge(request)

    # ------------------------------------------------------------------
    # Status updates
    # ------------------------------------------------------------------

    def find_one_or_fail(self, session: Session, order_id: str) -> Order:
        order = OrderOperations.get(session, order_id)
        if not order:
            raise NotFoundError("Order not found")
        return order

    def update_status(
        self, session: Session, order_id: str, status: OrderStatus
    ) -> Order:
        order = self.find_one_or_fail(session, order_id)
        previous = order.status
        order.status = OrderStatus(status)
        session.flush()
        logger.info(f"Order {order_id} status {previous.value} -> {order.status.value}")
        return order

    def find_transaction(
        self, session: Session, transaction_id: str, for_update: bool = False
    ) -> Optional[Transaction]:
        return TransactionOperations.get_by_transaction_id(
            session, transaction_id, for_update=for_update
        )

    def update_transaction_status(
        self,
        session: Session,
        transaction_id: str,
        status: TransactionStatus,
        expected_status: Optional[TransactionStatus] = None,
    ) -> Transaction:
        """
        Persist a transaction status change and sync linked subscriptions

        Every transaction status change goes through here, so subscription
        periods never drift from transaction state.

        Args:
            session: Active session
            transaction_id: External transaction ID
            status: New status
            expected_status: When given, only update if the stored status
                still equals it

        Returns:
            Updated Transaction

        Raises:
            NotFoundError: unknown transaction
            StaleTransactionError: stored status no longer equals expected_status
        """
        transaction = self.find_transaction(session, transaction_id)
        if not transaction:
            raise NotFoundError(f"Transaction {transaction_id} not found")

        status = TransactionStatus(status)
        previous = transaction.status

        if expected_status is None:
            transaction.status = status
            session.flush()
        elif not TransactionOperations.compare_and_set_status(
            session, transaction, TransactionStatus(expected_status), status
        ):
            raise StaleTransactionError(
                f"Transaction {transaction_id} changed concurrently; "
                f"expected {TransactionStatus(expected_status).value}"
            )

        logger.info(
            f"Transaction {transaction_id} status {previous.value} -> {status.value}"
        )

        self._subscriptions.find_and_update_subscription_by_transaction(
            session, transaction_id, status
        )
        return transaction

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> OrderResponse:
        with self._session_factory() as session:
            return OrderResponse.model_validate(self.find_one_or_fail(session, order_id))

    def list_customer_orders(self, customer_id: str) -> List[OrderResponse]:
        with self._session_factory() as session:
            return [
                OrderResponse.model_validate(o)
                for o in OrderOperations.list_for_customer(session, customer_id)
            ]

