"""
Status lookup tables shared by checkout, webhooks and recurring billing

All tables are total over their key enum; tests check every entry.
"""

from database.models import (
    OrderStatus,
    PeriodStatus,
    SubscriptionStatus,
    TransactionStatus,
)
from services.charge_provider import ChargeStatus

CHARGE_TO_ORDER_STATUS = {
    ChargeStatus.PAID: OrderStatus.CONFIRMED,
    ChargeStatus.REFUSED: OrderStatus.FAILED,
    ChargeStatus.FAILED: OrderStatus.FAILED,
    ChargeStatus.CREATED: OrderStatus.PENDING,
    ChargeStatus.PROCESSING: OrderStatus.PENDING,
}

CHARGE_TO_TRANSACTION_STATUS = {
    ChargeStatus.PAID: TransactionStatus.PAID,
    ChargeStatus.REFUSED: TransactionStatus.REFUSED,
    ChargeStatus.FAILED: TransactionStatus.FAILED,
    ChargeStatus.CREATED: TransactionStatus.CREATED,
    ChargeStatus.PROCESSING: TransactionStatus.PROCESSING,
}

ORDER_TO_SUBSCRIPTION_STATUS = {
    OrderStatus.CONFIRMED: SubscriptionStatus.ACTIVE,
    OrderStatus.PENDING: SubscriptionStatus.PENDING,
    OrderStatus.FAILED: SubscriptionStatus.CANCELED,
    OrderStatus.CANCELLED: SubscriptionStatus.CANCELED,
}

ORDER_TO_PERIOD_STATUS = {
    OrderStatus.CONFIRMED: PeriodStatus.PAID,
    OrderStatus.PENDING: PeriodStatus.PENDING,
    OrderStatus.FAILED: PeriodStatus.FAILED,
    OrderStatus.CANCELLED: PeriodStatus.FAILED,
}

TRANSACTION_TO_PERIOD_STATUS = {
    TransactionStatus.PAID: PeriodStatus.PAID,
    TransactionStatus.FAILED: PeriodStatus.FAILED,
    TransactionStatus.REFUSED: PeriodStatus.FAILED,
    TransactionStatus.CREATED: PeriodStatus.PENDING,
    TransactionStatus.PROCESSING: PeriodStatus.PENDING,
}

TRANSACTION_TO_SUBSCRIPTION_STATUS = {
    TransactionStatus.PAID: SubscriptionStatus.ACTIVE,
    TransactionStatus.FAILED: SubscriptionStatus.PAST_DUE,
    TransactionStatus.REFUSED: SubscriptionStatus.PAST_DUE,
    TransactionStatus.CREATED: SubscriptionStatus.PENDING,
    TransactionStatus.PROCESSING: SubscriptionStatus.PENDING,
}

# Legal next statuses per current status. PAID and REFUSED are sinks.
ALLOWED_TRANSACTION_TRANSITIONS = {
    TransactionStatus.PAID: frozenset({TransactionStatus.PAID}),
    TransactionStatus.REFUSED: frozenset({TransactionStatus.REFUSED}),
    TransactionStatus.PROCESSING: frozenset(
        {
            TransactionStatus.PROCESSING,
            TransactionStatus.PAID,
            TransactionStatus.FAILED,
            TransactionStatus.REFUSED,
        }
    ),
    TransactionStatus.CREATED: frozenset(
        {
            TransactionStatus.CREATED,
            TransactionStatus.PROCESSING,
            TransactionStatus.PAID,
            TransactionStatus.FAILED,
            TransactionStatus.REFUSED,
        }
    ),
    TransactionStatus.FAILED: frozenset(
        {
            TransactionStatus.FAILED,
            TransactionStatus.PROCESSING,
            TransactionStatus.PAID,
            TransactionStatus.REFUSED,
        }
    ),
}

# Transactions that block a new charge attempt on the same order
ACTIVE_TRANSACTION_STATUSES = frozenset(
    {TransactionStatus.CREATED, TransactionStatus.PROCESSING}
)

# Charge outcomes that still provision subscriptions at checkout
SUBSCRIBABLE_CHARGE_STATUSES = frozenset(
    {ChargeStatus.PAID, ChargeStatus.CREATED, ChargeStatus.PROCESSING}
)


def order_status_for_charge(status: ChargeStatus) -> OrderStatus:
    return CHARGE_TO_ORDER_STATUS[ChargeStatus(status)]


def transaction_status_for_charge(status: ChargeStatus) -> TransactionStatus:
    return CHARGE_TO_TRANSACTION_STATUS[ChargeStatus(status)]


def is_transition_allowed(current: TransactionStatus, new: TransactionStatus) -> bool:
    return TransactionStatus(new) in ALLOWED_TRANSACTION_TRANSITIONS[
        TransactionStatus(current)
    ]
