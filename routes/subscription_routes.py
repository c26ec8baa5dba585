"""
Subscription routes
Lookups plus a manual trigger for the recurring billing run
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from models.subscription import ProcessBillingResponse, SubscriptionResponse
from routes.dependencies import get_billing_service, get_subscription_service
from services.exceptions import DomainError
from services.recurring_billing import RecurringBillingService
from services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


@router.post("/process-billing", response_model=ProcessBillingResponse)
def process_billing(
    billing: RecurringBillingService = Depends(get_billing_service),
):
    """
    Run recurring billing now

    Same work as the daily scheduler; each due subscription is billed in
    its own transaction and reported individually.
    """
    try:
        logger.info("Manual recurring billing run requested")
        return ProcessBillingResponse.from_results(billing.process_due_subscriptions())
    except Exception as e:
        logger.exception(f"Error in manual billing run: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to process billing")


@router.get("/customer/{customer_id}", response_model=List[SubscriptionResponse])
def list_customer_subscriptions(
    customer_id: str,
    subscriptions: SubscriptionService = Depends(get_subscription_service),
):
    try:
        return subscriptions.list_customer_subscriptions(customer_id)
    except Exception as e:
        logger.exception(f"Error listing subscriptions for {customer_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to list subscriptions")


@router.get("/{subscription_id}", response_model=SubscriptionResponse)
def get_subscription(
    subscription_id: str,
    subscriptions: SubscriptionService = Depends(get_subscription_service),
):
    try:
        return subscriptions.get_subscription(subscription_id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.exception(f"Error fetching subscription {subscription_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch subscription")
