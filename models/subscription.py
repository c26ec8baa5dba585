"""
Request/response models for subscriptions and recurring billing
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from database.models import Periodicity, PeriodStatus, SubscriptionStatus


class SubscriptionPeriodResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    order_id: str
    start_date: date
    end_date: date
    status: PeriodStatus
    price: Decimal
    billed_at: Optional[date] = None


class SubscriptionResponse(BaseModel):
    """Subscription with its billing periods"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    subscription_id: str
    customer_id: str
    product_id: str
    price: Decimal
    periodicity: Periodicity
    status: SubscriptionStatus
    next_billing_date: date
    start_date: Optional[date] = None
    description: Optional[str] = None
    periods: List[SubscriptionPeriodResponse] = []
    created_at: datetime


class SubscriptionSyncResult(BaseModel):
    """What a transaction status change did to a linked subscription"""

    subscription_id: str
    period_status: PeriodStatus
    subscription_status: SubscriptionStatus


class BillingResult(BaseModel):
    """Outcome of billing one due subscription"""

    subscription_id: str
    success: bool
    order_id: Optional[str] = None
    transaction_id: Optional[str] = None
    error: Optional[str] = None


class ProcessBillingResponse(BaseModel):
    """Response model for a billing run"""

    processed: int = Field(..., description="Subscriptions attempted")
    successful: int
    failed: int
    results: List[BillingResult]

    @classmethod
    def from_results(cls, results: List[BillingResult]) -> "ProcessBillingResponse":
        successful = sum(1 for r in results if r.success)
        return cls(
            processed=len(results),
            successful=successful,
            failed=len(results) - successful,
            results=results,
        )
