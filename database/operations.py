"""
Database operations for orders, transactions, subscriptions and carts

Every function takes the caller's session, so the caller decides the
transaction boundary. Reads never return soft-deleted rows.
"""

from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from database.models import (
    Cart,
    CartStatus,
    Customer,
    Order,
    Product,
    Subscription,
    SubscriptionPeriod,
    SubscriptionStatus,
    Transaction,
    TransactionStatus,
)


class CustomerOperations:
    """Customer lookups"""

    @staticmethod
    def get(session: Session, customer_id: str) -> Optional[Customer]:
        return session.scalars(
            select(Customer).where(
                Customer.id == customer_id, Customer.deleted_at.is_(None)
            )
        ).first()


class ProductOperations:
    """Product lookups"""

    @staticmethod
    def get(session: Session, product_id: str) -> Optional[Product]:
        return session.scalars(
            select(Product).where(
                Product.id == product_id, Product.deleted_at.is_(None)
            )
        ).first()


class CartOperations:
    """Cart persistence"""

    @staticmethod
    def get(session: Session, cart_id: str) -> Optional[Cart]:
        """
        Get a cart with its items and their products loaded

        Args:
            session: Active session
            cart_id: Cart primary key

        Returns:
            Cart or None if not found
        """
        return session.scalars(
            select(Cart)
            .options(selectinload(Cart.items), selectinload(Cart.customer))
            .where(Cart.id == cart_id, Cart.deleted_at.is_(None))
        ).first()

    @staticmethod
    def get_open_for_customer(session: Session, customer_id: str) -> Optional[Cart]:
        return session.scalars(
            select(Cart)
            .options(selectinload(Cart.items))
            .where(
                Cart.customer_id == customer_id,
                Cart.status == CartStatus.OPEN,
                Cart.deleted_at.is_(None),
            )
            .order_by(Cart.created_at.desc())
        ).first()


class OrderOperations:
    """Order persistence"""

    @staticmethod
    def get(session: Session, order_id: str) -> Optional[Order]:
        return session.scalars(
            select(Order)
            .options(selectinload(Order.transactions), selectinload(Order.customer))
            .where(Order.id == order_id, Order.deleted_at.is_(None))
        ).first()

    @staticmethod
    def get_by_cart(session: Session, cart_id: str) -> Optional[Order]:
        """
        Get the order created from a cart, if checkout already ran for it

        Args:
            session: Active session
            cart_id: Cart primary key

        Returns:
            Order with transactions loaded, or None
        """
        return session.scalars(
            select(Order)
            .options(selectinload(Order.transactions))
            .where(Order.cart_id == cart_id, Order.deleted_at.is_(None))
        ).first()

    @staticmethod
    def list_for_customer(session: Session, customer_id: str) -> List[Order]:
        return list(
            session.scalars(
                select(Order)
                .options(selectinload(Order.transactions))
                .where(Order.customer_id == customer_id, Order.deleted_at.is_(None))
                .order_by(Order.created_at.desc())
            )
        )


class TransactionOperations:
    """Transaction persistence"""

    @staticmethod
    def get_by_transaction_id(
        session: Session,
        transaction_id: str,
        for_update: bool = False,
    ) -> Optional[Transaction]:
        """
        Get transaction by the external PSP transaction ID

        Args:
            session: Active session
            transaction_id: External transaction ID
            for_update: Lock the row until the session's transaction ends

        Returns:
            Transaction or None if not found
        """
        stmt = select(Transaction).where(
            Transaction.transaction_id == transaction_id,
            Transaction.deleted_at.is_(None),
        )
        if for_update:
            stmt = stmt.with_for_update()
        return session.scalars(stmt).first()

    @staticmethod
    def compare_and_set_status(
        session: Session,
        transaction: Transaction,
        expected: TransactionStatus,
        new: TransactionStatus,
    ) -> bool:
        """
        Set status only if the stored row still has ``expected``

        Args:
            session: Active session
            transaction: Loaded transaction, refreshed on success
            expected: Status the caller read before deciding
            new: Status to write

        Returns:
            True if the row was updated
        """
        result = session.execute(
            update(Transaction)
            .where(
                Transaction.id == transaction.id,
                Transaction.status == expected,
            )
            .values(status=new, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        session.refresh(transaction)
        return True


class SubscriptionOperations:
    """Subscription and subscription period persistence"""

    @staticmethod
    def get(session: Session, subscription_pk: str) -> Optional[Subscription]:
        return session.scalars(
            select(Subscription)
            .options(
                selectinload(Subscription.customer),
                selectinload(Subscription.product),
                selectinload(Subscription.periods),
            )
            .where(
                Subscription.id == subscription_pk,
                Subscription.deleted_at.is_(None),
            )
        ).first()

    @staticmethod
    def find_active(
        session: Session, customer_id: str, product_id: str
    ) -> Optional[Subscription]:
        return session.scalars(
            select(Subscription).where(
                Subscription.customer_id == customer_id,
                Subscription.product_id == product_id,
                Subscription.status == SubscriptionStatus.ACTIVE,
                Subscription.deleted_at.is_(None),
            )
        ).first()

    @staticmethod
    def list_for_customer(session: Session, customer_id: str) -> List[Subscription]:
        return list(
            session.scalars(
                select(Subscription)
                .options(selectinload(Subscription.periods))
                .where(
                    Subscription.customer_id == customer_id,
                    Subscription.deleted_at.is_(None),
                )
                .order_by(Subscription.created_at.desc())
            )
        )

    @staticmethod
    def list_due(session: Session, today: date) -> List[Subscription]:
        """
        Get ACTIVE subscriptions whose next billing date is today or earlier

        Args:
            session: Active session
            today: Reference day

        Returns:
            List of Subscription instances, oldest billing date first
        """
        return list(
            session.scalars(
                select(Subscription)
                .options(selectinload(Subscription.customer))
                .where(
                    Subscription.status == SubscriptionStatus.ACTIVE,
                    Subscription.deleted_at.is_(None),
                    Subscription.next_billing_date <= today,
                )
                .order_by(Subscription.next_billing_date, Subscription.created_at)
            )
        )

    @staticmethod
    def periods_for_transaction(
        session: Session, transaction_id: str
    ) -> List[SubscriptionPeriod]:
        """
        Get the periods funded by the order that owns a transaction

        Args:
            session: Active session
            transaction_id: External transaction ID

        Returns:
            List of SubscriptionPeriod instances (empty when unrelated)
        """
        return list(
            session.scalars(
                select(SubscriptionPeriod)
                .join(Order, SubscriptionPeriod.order_id == Order.id)
                .join(Transaction, Transaction.order_id == Order.id)
                .options(selectinload(SubscriptionPeriod.subscription))
                .where(
                    Transaction.transaction_id == transaction_id,
                    SubscriptionPeriod.deleted_at.is_(None),
                )
                .order_by(SubscriptionPeriod.created_at)
            )
        )
