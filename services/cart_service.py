"""
Cart and checkout
Builds carts and hands closed carts to the order ledger
"""

import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from database.models import (
    Cart,
    CartItem,
    CartStatus,
    PaymentMethod,
    ProductType,
)
from database.operations import CartOperations, CustomerOperations, ProductOperations
from database.session import get_session
from models.cart import CartResponse
from models.order import CheckoutResponse, TransactionResponse
from services.exceptions import BadRequestError, NotFoundError
from services.order_service import OrderService
from utils.money import to_money

logger = logging.getLogger(__name__)


class CartService:
    """Cart lifecycle and the checkout entry point"""

    def __init__(self, order_service: OrderService, session_factory=get_session):
        self._orders = order_service
        self._session_factory = session_factory

    def open_cart(self, customer_id: str) -> CartResponse:
        """Return the customer's OPEN cart, creating one if needed"""
        with self._session_factory() as session:
            if not CustomerOperations.get(session, customer_id):
                raise NotFoundError("Customer not found")

            cart = CartOperations.get_open_for_customer(session, customer_id)
            if cart is None:
                cart = Cart(customer_id=customer_id, status=CartStatus.OPEN, total=0)
                session.add(cart)
                session.flush()
                logger.info(f"Cart {cart.id} opened for customer {customer_id}")

            return CartResponse.model_validate(cart)

    def add_item(
        self, customer_id: str, product_id: str, quantity: int = 1
    ) -> CartResponse:
        """
        Add a product to the customer's open cart

        Args:
            customer_id: Cart owner
            product_id: Product to add
            quantity: Units; subscription products always count as 1

        Returns:
            Updated cart

        Raises:
            NotFoundError: customer or product missing
            BadRequestError: product/periodicity mismatch or duplicate subscription item
        """
        if quantity < 1:
            raise BadRequestError("Quantity must be at least 1")

        with self._session_factory() as session:
            if not CustomerOperations.get(session, customer_id):
                raise NotFoundError("Customer not found")

            product = ProductOperations.get(session, product_id)
            if not product:
                raise NotFoundError("Product not found")

            if product.type == ProductType.SUBSCRIPTION and not product.periodicity:
                raise BadRequestError("Subscription product must have a periodicity")
            if product.type == ProductType.SINGLE and product.periodicity:
                raise BadRequestError("Single product must not have a periodicity")

            cart = CartOperations.get_open_for_customer(session, customer_id)
            if cart is None:
                cart = Cart(customer_id=customer_id, status=CartStatus.OPEN, total=0)
                session.add(cart)
                session.flush()

            if product.type == ProductType.SUBSCRIPTION:
                if any(item.product_id == product.id for item in cart.items):
                    raise BadRequestError("Subscription product is already in the cart")
                quantity = 1

            cart.items.append(
                CartItem(
                    product=product,
                    quantity=quantity,
                    price=to_money(product.price),
                    periodicity=product.periodicity,
                )
            )
            self._recompute_total(session, cart)

            logger.info(
                f"Added product {product.id} x{quantity} to cart {cart.id} "
                f"(total={cart.total})"
            )
            return CartResponse.model_validate(cart)

    def remove_item(self, customer_id: str, item_id: str) -> CartResponse:
        with self._session_factory() as session:
            cart = CartOperations.get_open_for_customer(session, customer_id)
            if cart is None:
                raise NotFoundError("Open cart not found")

            item = next((i for i in cart.items if i.id == item_id), None)
            if item is None:
                raise NotFoundError("Cart item not found")

            cart.items.remove(item)
            self._recompute_total(session, cart)

            logger.info(f"Removed item {item_id} from cart {cart.id}")
            return CartResponse.model_validate(cart)

    def close_cart(self, cart_id: str) -> CartResponse:
        with self._session_factory() as session:
            return CartResponse.model_validate(self._close(session, cart_id))

    def checkout(
        self, cart_id: str, customer_id: str, payment_method: PaymentMethod
    ) -> CheckoutResponse:
        """
        Close the cart and create (or retry) its order in one atomic scope

        Args:
            cart_id: Cart to check out
            customer_id: Customer paying, must own the cart
            payment_method: card, slipbank or pix

        Returns:
            CheckoutResponse with the order, its transactions and any
            subscription ids created
        """
        with self._session_factory() as session:
            cart = self._close(session, cart_id)
            if cart.customer_id != customer_id:
                raise NotFoundError("Cart not found for this customer")

            order, subscription_ids = self._orders.create_order(
                session, customer_id, cart.id, payment_method
            )

            return CheckoutResponse(
                order_id=order.id,
                order_status=order.status,
                order_total=to_money(order.total),
                payment_method=order.payment_method,
                transactions=[
                    TransactionResponse.model_validate(t) for t in order.transactions
                ],
                subscription_ids=subscription_ids or None,
            )

    def get_cart(self, cart_id: str) -> CartResponse:
        with self._session_factory() as session:
            cart = CartOperations.get(session, cart_id)
            if not cart:
                raise NotFoundError("Cart not found")
            return CartResponse.model_validate(cart)

    def _close(self, session: Session, cart_id: str) -> Cart:
        cart = CartOperations.get(session, cart_id)
        if not cart:
            raise NotFoundError("Cart not found")

        if cart.status == CartStatus.CLOSED:
            return cart

        if not cart.items:
            raise BadRequestError("Cannot close an empty cart")
        if to_money(cart.total) <= 0:
            raise BadRequestError("Cannot close a cart with zero or negative total")

        cart.status = CartStatus.CLOSED
        session.flush()
        logger.info(f"Cart {cart.id} closed (total={cart.total})")
        return cart

    @staticmethod
    def _recompute_total(session: Session, cart: Cart) -> Decimal:
        cart.total = to_money(
            sum(
                (to_money(item.price) * item.quantity for item in cart.items),
                Decimal("0"),
            )
        )
        session.flush()
        return cart.total
