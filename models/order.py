"""
Request/response models for orders and transactions
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from database.models import (
    OrderOrigin,
    OrderStatus,
    PaymentMethod,
    TransactionStatus,
)


class TransactionResponse(BaseModel):
    """One charge attempt against the payment provider"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    transaction_id: str = Field(..., description="External PSP transaction ID")
    status: TransactionStatus
    amount: Decimal
    currency: str
    message: Optional[str] = None
    processing_time: int = Field(0, description="Provider latency in milliseconds")
    created_at: datetime


class OrderResponse(BaseModel):
    """Order with its charge attempts"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    total: Decimal
    status: OrderStatus
    payment_method: PaymentMethod
    origin: OrderOrigin
    customer_id: str
    cart_id: Optional[str] = None
    transactions: List[TransactionResponse] = []
    created_at: datetime
    updated_at: datetime


class CheckoutRequest(BaseModel):
    """Request model for cart checkout"""

    customer_id: str = Field(..., description="Customer that owns the cart")
    payment_method: PaymentMethod = Field(..., description="card, slipbank or pix")


class CheckoutResponse(BaseModel):
    """Response model for cart checkout"""

    order_id: str
    order_status: OrderStatus
    order_total: Decimal
    payment_method: PaymentMethod
    transactions: List[TransactionResponse]
    subscription_ids: Optional[List[str]] = None
