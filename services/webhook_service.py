"""
Webhook Reconciler
Applies asynchronous payment notifications to Transaction, Order and
(through the ledger) Subscription state
"""

import hmac
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from config import settings
from database.models import Order, OrderStatus, Transaction, TransactionStatus
from database.session import get_session
from models.webhook import WebhookEventType, WebhookPayload
from services.exceptions import BadRequestError, NotFoundError, StaleTransactionError
from services.order_service import OrderService
from services.status_mapping import is_transition_allowed
from utils.money import amounts_match

logger = logging.getLogger(__name__)

EVENT_TO_TRANSACTION_STATUS = {
    WebhookEventType.PAYMENT_SUCCESS: TransactionStatus.PAID,
    WebhookEventType.PAYMENT_FAILED: TransactionStatus.FAILED,
    WebhookEventType.PAYMENT_PENDING: TransactionStatus.PROCESSING,
}

EVENT_TO_ORDER_STATUS = {
    WebhookEventType.PAYMENT_SUCCESS: OrderStatus.CONFIRMED,
    WebhookEventType.PAYMENT_FAILED: OrderStatus.FAILED,
    WebhookEventType.PAYMENT_PENDING: OrderStatus.PENDING,
}


def verify_webhook_secret(
    authorization: Optional[str],
    webhook_secret: Optional[str] = None,
) -> bool:
    """
    Check the shared secret a webhook presents

    Accepts the raw secret (``X-Webhook-Secret``) or ``Bearer <secret>``
    (``Authorization``). Comparison is constant-time.
    """
    expected = settings.WEBHOOK_SECRET if webhook_secret is None else webhook_secret
    if not expected:
        logger.error("Webhook secret not configured, rejecting webhook")
        return False
    if not authorization:
        return False

    presented = authorization
    if presented.startswith("Bearer "):
        presented = presented[len("Bearer "):]

    return hmac.compare_digest(presented.encode(), expected.encode())


class WebhookService:
    """Idempotent, order-safe processing of payment webhooks"""

    def __init__(self, order_service: OrderService, session_factory=get_session):
        self._orders = order_service
        self._session_factory = session_factory

    def process_webhook(self, payload: WebhookPayload) -> None:
        """
        Apply one webhook delivery inside a single atomic scope

        Duplicate deliveries and stale (regressive) events succeed without
        changing anything.

        Raises:
            NotFoundError: unknown transaction or order
            BadRequestError: payload inconsistent with stored state
        """
        logger.info(
            f"Processing webhook event: {payload.event.value} "
            f"for transaction: {payload.transaction_id}"
        )

        try:
            with self._session_factory() as session:
                self._apply(session, payload)
        except Exception as e:
            logger.exception(
                f"Error processing webhook event {payload.event.value} for "
                f"transaction {payload.transaction_id} (order={payload.order_id}, "
                f"customer={payload.customer_id}): {str(e)}"
            )
            raise

    def _apply(self, session: Session, payload: WebhookPayload) -> None:
        transaction = self._orders.find_transaction(
            session, payload.transaction_id, for_update=True
        )
        if not transaction:
            raise NotFoundError(f"Transaction {payload.transaction_id} not found")

        order = self._orders.find_one_or_fail(session, payload.order_id)

        if transaction.order_id != order.id:
            raise BadRequestError(
                f"Transaction {payload.transaction_id} does not belong to "
                f"order {payload.order_id}"
            )

        self._validate_payload_consistency(payload, transaction, order)

        expected_status = EVENT_TO_TRANSACTION_STATUS[payload.event]
        current_status = transaction.status

        if current_status == expected_status:
            logger.warning(
                f"Transaction {payload.transaction_id} already has status "
                f"{expected_status.value}. Webhook already processed. Skipping."
            )
            return

        if not is_transition_allowed(current_status, expected_status):
            logger.warning(
                f"Refusing transition of transaction {payload.transaction_id} from "
                f"{current_status.value} to {expected_status.value}. Skipping."
            )
            return

        try:
            self._orders.update_transaction_status(
                session,
                payload.transaction_id,
                expected_status,
                expected_status=current_status,
            )
        except StaleTransactionError as e:
            logger.warning(f"{str(e)}. Another delivery won; skipping.")
            return

        new_order_status = EVENT_TO_ORDER_STATUS[payload.event]
        if (
            new_order_status == OrderStatus.PENDING
            and order.status == OrderStatus.CONFIRMED
        ):
            logger.info(f"Order {order.id} already confirmed; keeping it confirmed")
        else:
            self._orders.update_status(session, order.id, new_order_status)

        logger.info(
            f"Webhook event {payload.event.value} processed successfully for "
            f"transaction {payload.transaction_id}"
        )

    @staticmethod
    def _validate_payload_consistency(
        payload: WebhookPayload, transaction: Transaction, order: Order
    ) -> None:
        if not amounts_match(payload.amount, transaction.amount):
            raise BadRequestError(
                f"Amount mismatch: payload has {payload.amount} but transaction "
                f"has {transaction.amount}"
            )

        if payload.currency != transaction.currency:
            raise BadRequestError(
                f"Currency mismatch: payload has {payload.currency} but transaction "
                f"has {transaction.currency}"
            )

        if payload.customer_id != order.customer_id:
            raise BadRequestError(
                f"Customer ID mismatch: payload has {payload.customer_id} but order "
                f"belongs to customer {order.customer_id}"
            )

    def build_payload(
        self, transaction_id: str, event: WebhookEventType
    ) -> WebhookPayload:
        """Build a well-formed payload from a stored transaction"""
        with self._session_factory() as session:
            transaction = self._orders.find_transaction(session, transaction_id)
            if not transaction:
                raise NotFoundError(f"Transaction {transaction_id} not found")
            order = transaction.order
            return WebhookPayload(
                event=event,
                transaction_id=transaction.transaction_id,
                order_id=order.id,
                customer_id=order.customer_id,
                amount=transaction.amount,
                currency=transaction.currency,
                payment_method=order.payment_method.value,
                timestamp=datetime.utcnow().isoformat() + "Z",
            )
