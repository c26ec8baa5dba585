"""
Order routes
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from models.order import OrderResponse
from routes.dependencies import get_order_service
from services.exceptions import DomainError
from services.order_service import OrderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.get("/customer/{customer_id}", response_model=List[OrderResponse])
def list_customer_orders(
    customer_id: str,
    orders: OrderService = Depends(get_order_service),
):
    """Orders of a customer, newest first"""
    try:
        return orders.list_customer_orders(customer_id)
    except Exception as e:
        logger.exception(f"Error listing orders for {customer_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to list orders")


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: str, orders: OrderService = Depends(get_order_service)):
    try:
        return orders.get_order(order_id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.exception(f"Error fetching order {order_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch order")
