"""
Cart request/response models
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from database.models import CartStatus, Periodicity


class OpenCartRequest(BaseModel):
    customer_id: str


class AddItemRequest(BaseModel):
    customer_id: str
    product_id: str
    quantity: int = Field(1, ge=1)


class CartItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    product_id: str
    quantity: int
    price: Decimal
    periodicity: Optional[Periodicity] = None


class CartResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    customer_id: str
    status: CartStatus
    total: Decimal
    items: List[CartItemResponse] = []
    created_at: datetime
    updated_at: datetime
