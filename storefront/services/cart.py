import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select, delete
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from storefront.core.exceptions import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    UnauthorizedError,
    UnavailableError,
    ValidationError,
)
from storefront.core.logging import get_logger
from storefront.models.cart import Cart, CartItem
from storefront.models.product import Product
from storefront.schemas.cart import CartItemView, CartView
from storefront.services.locks import KeyedLock, cart_locks
from storefront.services.stock import ReserveResult, StockLedger

logger = get_logger(__name__)


def conflict_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=0.02, min=0.02, max=0.5),
        retry=retry_if_exception_type(ConflictError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )


class CartService:
    """
    Per-user carts held against the stock ledger.

    Every public method takes the authenticated user's id and runs under that
    user's cart lock, so two requests for one cart in this process apply one
    after the other. Across processes each write is checked against the cart
    version read before it (optimistic locking): a write that finds the
    version moved rolls back and is retried from a fresh read.

    Stock reservations and the cart rows they back are committed in the same
    transaction. Each call ends by re-reading the cart, purging items that
    are no longer valid and returning the resulting CartView.
    """

    def __init__(self, session: Session, locks: KeyedLock = cart_locks):
        self.session = session
        self.ledger = StockLedger(session)
        self.locks = locks

    def get_cart(self, user_id: int) -> CartView:
        with self.locks.hold(user_id):
            cart_id = self._get_or_create_cart(user_id).id
            return self._refresh_view(cart_id)

    def add_to_cart(self, user_id: int, product_id: int, quantity: int) -> CartView:
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0")

        with self.locks.hold(user_id):
            cart_id = self._add(user_id, product_id, quantity)
            logger.info(f"Added product {product_id} x{quantity} to cart for user {user_id}")
            return self._refresh_view(cart_id)

    def update_cart_item(self, user_id: int, item_id: int, quantity: int) -> CartView:
        with self.locks.hold(user_id):
            cart_id = self._set_quantity(user_id, item_id, quantity)
            return self._refresh_view(cart_id)

    def remove_from_cart(self, user_id: int, item_id: int) -> CartView:
        with self.locks.hold(user_id):
            cart_id = self._remove(user_id, item_id)
            logger.info(f"Removed cart item {item_id} for user {user_id}")
            return self._refresh_view(cart_id)

    def clear_cart(self, user_id: int) -> CartView:
        with self.locks.hold(user_id):
            cart_id = self._clear(user_id)
            logger.info(f"Cleared cart for user {user_id}")
            return self._refresh_view(cart_id)

    # Writes. Each reads the cart version before anything else in the cart,
    # bumps it before writing, and commits reservation and rows together.

    @conflict_retry()
    def _add(self, user_id: int, product_id: int, quantity: int) -> int:
        cart = self._get_or_create_cart(user_id, for_update=True)
        cart_id, version = cart.id, cart.version

        product = self.session.get(Product, product_id, populate_existing=True)
        if not product:
            raise NotFoundError("Product not found")
        if not product.is_active:
            raise UnavailableError("Product is not available")
        if product.stock < quantity:
            raise InsufficientStockError("Insufficient stock available")

        item = self.session.exec(
            select(CartItem)
            .where(CartItem.cart_id == cart_id, CartItem.product_id == product_id)
            .execution_options(populate_existing=True)
        ).first()

        try:
            self._bump(cart_id, version)
            if item:
                new_quantity = item.quantity + quantity
                if product.stock < new_quantity:
                    raise InsufficientStockError("Insufficient stock available")
                self._reserve(product_id, quantity)
                item.quantity = new_quantity
                item.updated_at = datetime.now(timezone.utc)
            else:
                self._reserve(product_id, quantity)
                item = CartItem(cart_id=cart_id, product_id=product_id, quantity=quantity)
            self.session.add(item)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return cart_id

    @conflict_retry()
    def _set_quantity(self, user_id: int, item_id: int, quantity: int) -> int:
        item, cart_id, version = self._get_owned_item(user_id, item_id)

        try:
            self._bump(cart_id, version)
            if quantity <= 0:
                self.ledger.release(item.product_id, item.quantity)
                self.session.delete(item)
                logger.info(f"Removed cart item {item_id} for user {user_id}")
            else:
                product = self.session.get(Product, item.product_id, populate_existing=True)
                if product is None or product.stock < quantity:
                    raise InsufficientStockError("Insufficient stock available")
                delta = quantity - item.quantity
                if delta:
                    self._reserve(item.product_id, delta)
                item.quantity = quantity
                item.updated_at = datetime.now(timezone.utc)
                self.session.add(item)
                logger.info(f"Updated cart item {item_id} quantity to {quantity} for user {user_id}")
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return cart_id

    @conflict_retry()
    def _remove(self, user_id: int, item_id: int) -> int:
        item, cart_id, version = self._get_owned_item(user_id, item_id)

        try:
            self._bump(cart_id, version)
            self.ledger.release(item.product_id, item.quantity)
            self.session.delete(item)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return cart_id

    @conflict_retry()
    def _clear(self, user_id: int) -> int:
        cart = self._get_or_create_cart(user_id, for_update=True)
        cart_id, version = cart.id, cart.version
        items = self.session.exec(
            select(CartItem)
            .where(CartItem.cart_id == cart_id)
            .execution_options(populate_existing=True)
        ).all()

        try:
            self._bump(cart_id, version)
            for item in items:
                self.ledger.release(item.product_id, item.quantity)
            self.session.exec(delete(CartItem).where(CartItem.cart_id == cart_id))
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return cart_id

    def _bump(self, cart_id: int, version: int) -> None:
        result = self.session.exec(
            update(Cart)
            .where(Cart.id == cart_id, Cart.version == version)
            .values(version=Cart.version + 1, updated_at=datetime.now(timezone.utc))
        )
        if result.rowcount != 1:
            raise ConflictError("Cart was modified by another request, try again")

    def _reserve(self, product_id: int, delta: int) -> None:
        result = self.ledger.reserve(product_id, delta)
        if result is ReserveResult.NOT_FOUND:
            raise UnavailableError("Product is not available")
        if result is ReserveResult.INSUFFICIENT_STOCK:
            raise InsufficientStockError("Insufficient stock available")

    # Reads

    def _get_or_create_cart(self, user_id: int, for_update: bool = False) -> Cart:
        stmt = (
            select(Cart)
            .where(Cart.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()

        cart = self.session.exec(stmt).first()
        if cart:
            return cart

        cart = Cart(user_id=user_id)
        self.session.add(cart)
        try:
            self.session.commit()
        except IntegrityError:
            # Created concurrently by another process
            self.session.rollback()
            cart = self.session.exec(stmt).first()
            if cart is None:
                raise
            return cart

        self.session.refresh(cart)
        logger.info(f"Created cart {cart.id} for user {user_id}")
        return cart

    def _get_owned_item(self, user_id: int, item_id: int) -> Tuple[CartItem, int, int]:
        """Return the item, its cart id and the cart version it was read under."""
        item = self.session.get(CartItem, item_id, populate_existing=True)
        if not item:
            raise NotFoundError("Cart item not found")

        cart = self.session.exec(
            select(Cart)
            .where(Cart.id == item.cart_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).one()
        if cart.user_id != user_id:
            logger.warning(f"User {user_id} tried to modify cart item {item_id} of another user")
            raise UnauthorizedError("Unauthorized access to cart item")
        cart_id, version = cart.id, cart.version

        # The item must be no older than the version
        item = self._find_item(item_id)
        if not item:
            raise NotFoundError("Cart item not found")
        return item, cart_id, version

    def _find_item(self, item_id: int) -> Optional[CartItem]:
        return self.session.exec(
            select(CartItem)
            .where(CartItem.id == item_id)
            .execution_options(populate_existing=True)
        ).first()

    def _load(self, cart_id: int) -> Tuple[List[CartItem], Dict[int, Product]]:
        items = self.session.exec(
            select(CartItem)
            .where(CartItem.cart_id == cart_id)
            .order_by(CartItem.id)
            .execution_options(populate_existing=True)
        ).all()
        product_ids = {i.product_id for i in items}
        products = {}
        if product_ids:
            products = {
                p.id: p
                for p in self.session.exec(
                    select(Product)
                    .where(Product.id.in_(product_ids))
                    .execution_options(populate_existing=True)
                ).all()
            }
        return list(items), products

    @conflict_retry()
    def _refresh_view(self, cart_id: int) -> CartView:
        cart = self.session.exec(
            select(Cart)
            .where(Cart.id == cart_id)
            .execution_options(populate_existing=True)
        ).one()
        version = cart.version
        items, products = self._load(cart_id)

        kept, stale = [], []
        for item in items:
            product = products.get(item.product_id)
            if product is None or not product.is_active or item.quantity > product.stock:
                stale.append(item)
            else:
                kept.append(item)

        view = self._to_view(cart_id, kept, products)
        if stale:
            self._purge(cart_id, version, stale, products)
        return view

    def _purge(
        self,
        cart_id: int,
        version: int,
        stale: List[CartItem],
        products: Dict[int, Product],
    ) -> None:
        """Delete items whose product is gone, inactive, or short of stock."""
        stale_ids = [item.product_id for item in stale]
        try:
            self._bump(cart_id, version)
            for item in stale:
                if item.product_id in products:
                    self.ledger.release(item.product_id, item.quantity)
                self.session.delete(item)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.warning(f"Purged {len(stale_ids)} unavailable item(s) from cart {cart_id}: products {stale_ids}")

    def _to_view(self, cart_id: int, items: List[CartItem], products: Dict[int, Product]) -> CartView:
        views = []
        for item in items:
            product = products[item.product_id]
            views.append(CartItemView(
                id=item.id,
                product_id=product.id,
                product_name=product.name,
                product_price=product.price,
                product_image_url=product.image_url,
                quantity=item.quantity,
                subtotal=product.price * item.quantity,
                available=product.is_active and product.stock >= item.quantity,
            ))

        return CartView(
            id=cart_id,
            items=views,
            total_price=sum((v.subtotal for v in views), Decimal("0.00")),
            total_items=sum(v.quantity for v in views),
        )
