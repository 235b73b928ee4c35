from enum import Enum
from typing import Optional
from sqlalchemy import case, update
from sqlmodel import Session, select

from storefront.models.product import Product
from storefront.core.logging import get_logger

logger = get_logger(__name__)


class ReserveResult(str, Enum):
    OK = "ok"
    INSUFFICIENT_STOCK = "insufficient_stock"
    NOT_FOUND = "not_found"


class StockLedger:
    """
    The only writer of Product.reserved.

    A reservation is a single conditional UPDATE, so the check and the
    increment cannot interleave with another request on the same product.
    Nothing is committed here: the caller owns the transaction so a
    reservation and the cart write that goes with it commit or roll back
    together.
    """

    def __init__(self, session: Session):
        self.session = session

    def reserve(self, product_id: int, quantity_delta: int) -> ReserveResult:
        if quantity_delta < 0:
            return self.release(product_id, -quantity_delta)

        result = self.session.exec(
            update(Product)
            .where(
                Product.id == product_id,
                Product.is_active == True,  # noqa: E712
                Product.reserved + quantity_delta <= Product.stock,
            )
            .values(reserved=Product.reserved + quantity_delta)
        )
        if result.rowcount == 1:
            logger.info(f"Reserved {quantity_delta} of product {product_id}")
            return ReserveResult.OK

        is_active = self.session.exec(
            select(Product.is_active).where(Product.id == product_id)
        ).first()
        if not is_active:
            return ReserveResult.NOT_FOUND
        return ReserveResult.INSUFFICIENT_STOCK

    def release(self, product_id: int, quantity: int) -> ReserveResult:
        """Give units back. Allowed for inactive products; never goes below zero."""
        if quantity < 0:
            raise ValueError("Release quantity must not be negative")

        result = self.session.exec(
            update(Product)
            .where(Product.id == product_id)
            .values(
                reserved=case(
                    (Product.reserved >= quantity, Product.reserved - quantity),
                    else_=0,
                )
            )
        )
        if result.rowcount == 0:
            return ReserveResult.NOT_FOUND
        if quantity:
            logger.info(f"Released {quantity} of product {product_id}")
        return ReserveResult.OK

    def available(self, product_id: int) -> Optional[int]:
        """Unreserved units of an active product, None if absent or inactive."""
        row = self.session.exec(
            select(Product.stock, Product.reserved).where(
                Product.id == product_id, Product.is_active == True  # noqa: E712
            )
        ).first()
        if row is None:
            return None
        stock, reserved = row
        return max(stock - reserved, 0)
