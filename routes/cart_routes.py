"""
Cart routes
Open a cart, manage its items, close it and check it out
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from models.cart import AddItemRequest, CartResponse, OpenCartRequest
from models.order import CheckoutRequest, CheckoutResponse
from routes.dependencies import get_cart_service
from services.cart_service import CartService
from services.exceptions import DomainError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cart", tags=["cart"])


@router.post("/open", response_model=CartResponse)
def open_cart(
    request: OpenCartRequest,
    carts: CartService = Depends(get_cart_service),
):
    try:
        return carts.open_cart(request.customer_id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.exception(f"Error opening cart for {request.customer_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to open cart")


@router.post("/items", response_model=CartResponse)
def add_item(
    request: AddItemRequest,
    carts: CartService = Depends(get_cart_service),
):
    try:
        return carts.add_item(request.customer_id, request.product_id, request.quantity)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.exception(f"Error adding item to cart: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to add item")


@router.delete("/items/{item_id}", response_model=CartResponse)
def remove_item(
    item_id: str,
    customer_id: str,
    carts: CartService = Depends(get_cart_service),
):
    try:
        return carts.remove_item(customer_id, item_id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.exception(f"Error removing cart item {item_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to remove item")


@router.post("/{cart_id}/close", response_model=CartResponse)
def close_cart(cart_id: str, carts: CartService = Depends(get_cart_service)):
    try:
        return carts.close_cart(cart_id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.exception(f"Error closing cart {cart_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to close cart")


@router.post("/{cart_id}/checkout", response_model=CheckoutResponse)
def checkout(
    cart_id: str,
    request: CheckoutRequest,
    carts: CartService = Depends(get_cart_service),
):
    """
    Check out a cart

    Closes the cart if still open, charges it and returns the order with
    its transactions and any subscriptions created.
    """
    try:
        logger.info(f"Checkout requested for cart {cart_id} by {request.customer_id}")
        return carts.checkout(cart_id, request.customer_id, request.payment_method)
    except DomainError as e:
        logger.warning(f"Checkout of cart {cart_id} rejected: {str(e)}")
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.exception(f"Error in checkout of cart {cart_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Checkout failed: {str(e)}")
