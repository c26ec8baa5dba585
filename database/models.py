import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Column,
    String,
    DateTime,
    Date,
    Numeric,
    ForeignKey,
    Text,
    Integer,
    Enum as SAEnum,
    Index,
)
from sqlalchemy.orm import relationship, DeclarativeBase


class Base(DeclarativeBase):
    pass


def _uuid() -> str:
    return str(uuid.uuid4())


def _enum(enum_cls):
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class ProductType(str, Enum):
    SINGLE = "single"
    SUBSCRIPTION = "subscription"


class Periodicity(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class CartStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    CARD = "card"
    SLIPBANK = "slipbank"
    PIX = "pix"


class OrderOrigin(str, Enum):
    CART = "cart"
    SUBSCRIPTION = "subscription"


class TransactionStatus(str, Enum):
    CREATED = "created"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    REFUSED = "refused"


class SubscriptionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PENDING = "PENDING"
    PAST_DUE = "PAST_DUE"
    CANCELED = "CANCELED"


class PeriodStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class TimestampMixin:
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )
    # Soft delete marker; every read path filters on it
    deleted_at = Column(DateTime, nullable=True)


class Customer(TimestampMixin, Base):
    __tablename__ = "customer"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(32), nullable=True)


class Product(TimestampMixin, Base):
    __tablename__ = "product"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    type = Column(_enum(ProductType), nullable=False, default=ProductType.SINGLE)
    price = Column(Numeric(10, 2), nullable=False)
    periodicity = Column(_enum(Periodicity), nullable=True)


class Cart(TimestampMixin, Base):
    __tablename__ = "cart"

    id = Column(String(36), primary_key=True, default=_uuid)
    customer_id = Column(
        String(36),
        ForeignKey("customer.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status = Column(_enum(CartStatus), nullable=False, default=CartStatus.OPEN)
    total = Column(Numeric(10, 2), nullable=False, default=0)

    customer = relationship("Customer")
    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.created_at",
    )


class CartItem(TimestampMixin, Base):
    __tablename__ = "cart_item"

    id = Column(String(36), primary_key=True, default=_uuid)
    cart_id = Column(
        String(36),
        ForeignKey("cart.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = Column(String(36), ForeignKey("product.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    # Snapshots taken when the item is added
    price = Column(Numeric(10, 2), nullable=False)
    periodicity = Column(_enum(Periodicity), nullable=True)

    cart = relationship("Cart", back_populates="items")
    product = relationship("Product")


class Order(TimestampMixin, Base):
    __tablename__ = "order"

    id = Column(String(36), primary_key=True, default=_uuid)
    total = Column(Numeric(10, 2), nullable=False)
    status = Column(_enum(OrderStatus), nullable=False, default=OrderStatus.PENDING)
    payment_method = Column(_enum(PaymentMethod), nullable=False)
    origin = Column(_enum(OrderOrigin), nullable=False, default=OrderOrigin.CART)
    customer_id = Column(
        String(36),
        ForeignKey("customer.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    cart_id = Column(String(36), ForeignKey("cart.id"), nullable=True, index=True)

    customer = relationship("Customer")
    cart = relationship("Cart")
    transactions = relationship(
        "Transaction",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="Transaction.created_at",
    )


class Transaction(TimestampMixin, Base):
    __tablename__ = "transaction"

    id = Column(String(36), primary_key=True, default=_uuid)
    # External PSP identifier, idempotency key for webhooks
    transaction_id = Column(String(255), unique=True, nullable=False, index=True)
    status = Column(_enum(TransactionStatus), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="BRL")
    message = Column(Text, nullable=True)
    processing_time = Column(Integer, nullable=False, default=0)
    order_id = Column(
        String(36),
        ForeignKey("order.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    order = relationship("Order", back_populates="transactions")


class Subscription(TimestampMixin, Base):
    __tablename__ = "subscription"
    __table_args__ = (
        Index("ix_subscription_customer_status", "customer_id", "status"),
        Index("ix_subscription_status_next_billing", "status", "next_billing_date"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    subscription_id = Column(String(64), unique=True, nullable=False)
    customer_id = Column(
        String(36),
        ForeignKey("customer.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = Column(String(36), ForeignKey("product.id"), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    periodicity = Column(_enum(Periodicity), nullable=False)
    status = Column(
        _enum(SubscriptionStatus), nullable=False, default=SubscriptionStatus.PENDING
    )
    next_billing_date = Column(Date, nullable=False, index=True)
    start_date = Column(Date, nullable=True)
    description = Column(String(255), nullable=True)

    customer = relationship("Customer")
    product = relationship("Product")
    periods = relationship(
        "SubscriptionPeriod",
        back_populates="subscription",
        cascade="all, delete-orphan",
        order_by="SubscriptionPeriod.created_at",
    )


class SubscriptionPeriod(TimestampMixin, Base):
    __tablename__ = "subscription_period"

    id = Column(String(36), primary_key=True, default=_uuid)
    subscription_id = Column(
        String(36),
        ForeignKey("subscription.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    order_id = Column(String(36), ForeignKey("order.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(_enum(PeriodStatus), nullable=False, default=PeriodStatus.PENDING)
    price = Column(Numeric(10, 2), nullable=False)
    billed_at = Column(Date, nullable=True)

    subscription = relationship("Subscription", back_populates="periods")
    order = relationship("Order")
