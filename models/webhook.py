"""
Payment webhook models
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class WebhookEventType(str, Enum):
    PAYMENT_SUCCESS = "payment_success"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_PENDING = "payment_pending"


class WebhookMetadata(BaseModel):
    subscription_id: Optional[str] = None


class WebhookPayload(BaseModel):
    """Payment status notification sent by the PSP"""

    event: WebhookEventType
    transaction_id: str = Field(..., min_length=1, description="External transaction ID")
    order_id: str = Field(..., min_length=1)
    customer_id: str = Field(..., min_length=1)
    amount: Decimal
    currency: str = Field(..., min_length=3, max_length=3)
    payment_method: str
    timestamp: str
    metadata: Optional[WebhookMetadata] = None

    class Config:
        json_schema_extra = {
            "example": {
                "event": "payment_success",
                "transaction_id": "PSP_1760000000000_ABC123DEF456G",
                "order_id": "550e8400-e29b-41d4-a716-446655440000",
                "customer_id": "6f1c2a9e-3b1d-4c55-9f63-0c7a1e2d4b5f",
                "amount": 149.90,
                "currency": "BRL",
                "payment_method": "card",
                "timestamp": "2026-10-09T15:00:00Z",
                "metadata": {},
            }
        }


class SimulatedWebhookRequest(BaseModel):
    """Request model for simulating a webhook from a stored transaction"""

    transaction_id: str
    event: WebhookEventType


class WebhookAck(BaseModel):
    status: str = "success"
