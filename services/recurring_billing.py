"""
Recurring Billing
Charges due subscriptions once per cycle, one atomic scope per subscription
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from config import settings
from database.models import PaymentMethod, SubscriptionStatus
from database.session import get_session
from models.subscription import BillingResult
from services.charge_provider import ChargeRequest, ChargeStatus
from services.exceptions import NotFoundError
from services.order_service import OrderService
from services.subscription_service import SubscriptionService
from utils.money import to_money

logger = logging.getLogger(__name__)

# Recurring charges are always taken on the customer's card
RECURRING_PAYMENT_METHOD = PaymentMethod.CARD


class RecurringBillingService:
    """Drives one charge + ledger + period cycle per due subscription"""

    def __init__(
        self,
        order_service: OrderService,
        subscription_service: SubscriptionService,
        session_factory=get_session,
    ):
        self._orders = order_service
        self._subscriptions = subscription_service
        self._session_factory = session_factory

    def process_due_subscriptions(self) -> List[BillingResult]:
        """
        Bill every due subscription independently

        A failure on one subscription is recorded in its result and rolls
        back only that subscription's work.

        Returns:
            One BillingResult per due subscription
        """
        with self._session_factory() as session:
            due_ids = [
                s.id for s in self._subscriptions.find_due_subscriptions(session)
            ]
        logger.info(f"Found {len(due_ids)} subscriptions due for billing")

        results = []
        for subscription_pk in due_ids:
            try:
                with self._session_factory() as session:
                    result = self.process_subscription_billing(session, subscription_pk)
            except Exception as e:
                logger.error(
                    f"Error processing billing for subscription {subscription_pk}: {str(e)}"
                )
                result = BillingResult(
                    subscription_id=subscription_pk,
                    success=False,
                    error=str(e),
                )
            results.append(result)

        successful = sum(1 for r in results if r.success)
        logger.info(
            f"Recurring billing completed. Processed: {len(results)}, "
            f"Successful: {successful}, Failed: {len(results) - successful}"
        )
        return results

    def process_subscription_billing(
        self, session: Session, subscription_pk: str
    ) -> BillingResult:
        """Charge one subscription and record order, transaction and period"""
        subscription = self._subscriptions.find_one_or_fail(session, subscription_pk)
        customer = subscription.customer
        if customer is None or customer.deleted_at is not None:
            raise NotFoundError(f"Customer not found for subscription {subscription.id}")

        logger.info(f"Processing billing for subscription {subscription.subscription_id}")

        charge = self._orders.charge(
            ChargeRequest(
                amount=to_money(subscription.price),
                currency=self._orders.currency,
                payment_method=RECURRING_PAYMENT_METHOD,
                reference=subscription.subscription_id,
                customer_email=customer.email,
                customer_name=customer.name,
            )
        )

        order, transaction = self._orders.create_recurring_order(
            session,
            customer.id,
            subscription.price,
            RECURRING_PAYMENT_METHOD,
            charge,
        )

        self._subscriptions.create_period(session, subscription, order, subscription.price)

        if charge.status == ChargeStatus.PAID:
            self._subscriptions.update_status(
                session, subscription.id, SubscriptionStatus.ACTIVE
            )
            self._subscriptions.update_next_billing_date(session, subscription.id)
        else:
            # next_billing_date stays put so the next run retries
            self._subscriptions.update_status(
                session, subscription.id, SubscriptionStatus.PAST_DUE
            )

        return BillingResult(
            subscription_id=subscription.id,
            success=charge.status == ChargeStatus.PAID,
            order_id=order.id,
            transaction_id=transaction.transaction_id,
        )


def seconds_until_next_run(
    now: datetime,
    run_hour: int = 0,
    timezone: str = "UTC",
) -> float:
    """Seconds from ``now`` (aware) until the next ``run_hour``:00 in ``timezone``"""
    local_now = now.astimezone(ZoneInfo(timezone))
    next_run = local_now.replace(hour=run_hour, minute=0, second=0, microsecond=0)
    if next_run <= local_now:
        next_run = (next_run + timedelta(days=1)).replace(
            hour=run_hour, minute=0, second=0, microsecond=0
        )
    utc = ZoneInfo("UTC")
    delta = next_run.astimezone(utc) - local_now.astimezone(utc)
    return max(delta.total_seconds(), 0.0)


class BillingScheduler:
    """Daily asyncio loop around RecurringBillingService"""

    def __init__(
        self,
        billing_service: RecurringBillingService,
        run_hour: Optional[int] = None,
        timezone: Optional[str] = None,
    ):
        self._billing = billing_service
        self.run_hour = settings.BILLING_RUN_HOUR if run_hour is None else run_hour
        self.timezone = timezone or settings.BILLING_TIMEZONE
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run_forever(), name="recurring-billing"
        )
        logger.info(
            f"Recurring billing scheduled daily at {self.run_hour:02d}:00 ({self.timezone})"
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Recurring billing scheduler stopped")

    async def run_once(self) -> List[BillingResult]:
        logger.info("Starting scheduled recurring billing process")
        return await asyncio.to_thread(self._billing.process_due_subscriptions)

    async def _run_forever(self) -> None:
        while True:
            delay = seconds_until_next_run(
                datetime.now(ZoneInfo("UTC")), self.run_hour, self.timezone
            )
            await asyncio.sleep(delay)
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Error in scheduled recurring billing: {str(e)}")
