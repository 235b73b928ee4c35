import math
from datetime import datetime, timezone
from typing import Callable, List, Optional, TypeVar
from sqlalchemy import func, update
from sqlmodel import Session, select

from storefront.core.config import settings
from storefront.core.exceptions import NotFoundError, ValidationError
from storefront.core.logging import get_logger
from storefront.models.cart import Cart, CartItem
from storefront.models.product import Product
from storefront.schemas.product import (
    Page,
    ProductCreate,
    ProductRead,
    ProductUpdate,
    SearchFilters,
)
from storefront.services.cache import (
    CATEGORIES,
    LISTINGS,
    LOOKUP,
    MISS,
    PARTITIONS,
    SEARCH,
    CatalogCache,
    catalog_cache,
    make_key,
)
from storefront.services.stock import StockLedger

logger = get_logger(__name__)

T = TypeVar("T")


class ProductService:
    """
    Catalog reads and catalog management.

    Reads go through the catalog cache; every write commits first and then
    invalidates each partition the change can show up in, before returning.
    """

    def __init__(self, session: Session, cache: CatalogCache = catalog_cache):
        self.session = session
        self.cache = cache

    def _cached(self, partition: str, key: str, compute: Callable[[], T]) -> T:
        generation = None
        try:
            value = self.cache.get(partition, key)
            if value is not MISS:
                return value
            generation = self.cache.generation(partition)
        except Exception as e:
            logger.warning(f"Catalog cache read failed for {partition}: {e}")

        value = compute()

        if generation is not None:
            try:
                self.cache.put(partition, key, value, generation=generation)
            except Exception as e:
                logger.warning(f"Catalog cache write failed for {partition}: {e}")
        return value

    def _invalidate(self, *partitions: str) -> None:
        try:
            self.cache.invalidate(*partitions)
            return
        except Exception as e:
            logger.warning(f"Catalog cache invalidation of {partitions} failed: {e}")
        # Full clear, and no caching at all if even that fails
        try:
            self.cache.clear()
        except Exception as e:
            logger.error(f"Catalog cache clear failed, disabling cache: {e}")
            self.cache.enabled = False

    def _check_paging(self, page: int, size: int) -> None:
        if page < 0:
            raise ValidationError("Page index must not be negative")
        if size < 1 or size > settings.MAX_PAGE_SIZE:
            raise ValidationError(f"Page size must be between 1 and {settings.MAX_PAGE_SIZE}")

    def _page(self, conditions: list, page: int, size: int) -> Page[ProductRead]:
        total = self.session.exec(
            select(func.count()).select_from(Product).where(*conditions)
        ).one()
        products = self.session.exec(
            select(Product)
            .where(*conditions)
            .order_by(Product.id)
            .offset(page * size)
            .limit(size)
        ).all()
        return Page[ProductRead](
            items=[ProductRead.model_validate(p) for p in products],
            page=page,
            size=size,
            total=total,
            total_pages=math.ceil(total / size) if total else 0,
        )

    def list_products(self, page: int = 0, size: int = settings.DEFAULT_PAGE_SIZE) -> Page[ProductRead]:
        self._check_paging(page, size)
        return self._cached(
            LISTINGS,
            make_key(page, size),
            lambda: self._page([Product.is_active == True], page, size),  # noqa: E712
        )

    def get_product(self, product_id: int) -> ProductRead:
        def load() -> ProductRead:
            product = self.session.get(Product, product_id)
            if not product:
                raise NotFoundError(f"Product not found with id: {product_id}")
            if not product.is_active:
                raise NotFoundError("Product not available")
            return ProductRead.model_validate(product)

        return self._cached(LOOKUP, make_key(product_id), load)

    def search_products(
        self,
        filters: SearchFilters,
        page: int = 0,
        size: int = settings.DEFAULT_PAGE_SIZE,
    ) -> Page[ProductRead]:
        self._check_paging(page, size)
        if (
            filters.min_price is not None
            and filters.max_price is not None
            and filters.min_price > filters.max_price
        ):
            raise ValidationError("min_price must not exceed max_price")

        conditions = [Product.is_active == True]  # noqa: E712
        if filters.category is not None:
            conditions.append(Product.category == filters.category)
        if filters.name is not None:
            conditions.append(func.lower(Product.name).contains(filters.name.lower(), autoescape=True))
        if filters.min_price is not None:
            conditions.append(Product.price >= filters.min_price)
        if filters.max_price is not None:
            conditions.append(Product.price <= filters.max_price)
        if filters.min_rating is not None:
            conditions.append(Product.rating >= filters.min_rating)

        key = make_key(
            filters.category,
            filters.name,
            filters.min_price,
            filters.max_price,
            filters.min_rating,
            page,
            size,
        )
        return self._cached(SEARCH, key, lambda: self._page(conditions, page, size))

    def list_categories(self) -> List[str]:
        def load() -> List[str]:
            return list(
                self.session.exec(
                    select(Product.category)
                    .where(Product.is_active == True, Product.category.is_not(None))  # noqa: E712
                    .distinct()
                    .order_by(Product.category)
                ).all()
            )

        return self._cached(CATEGORIES, make_key(), load)

    def _get_for_update(self, product_id: int) -> Product:
        product = self.session.get(Product, product_id)
        if not product:
            raise NotFoundError(f"Product not found with id: {product_id}")
        return product

    def _save(self, product: Product) -> Product:
        product.updated_at = datetime.now(timezone.utc)
        self.session.add(product)
        self.session.commit()
        self.session.refresh(product)
        return product

    def _save_with_reconcile(self, product: Product) -> Product:
        try:
            self.session.add(product)
            self._release_oversold(product.id)
            return self._save(product)
        except Exception:
            self.session.rollback()
            raise

    def _release_oversold(self, product_id: int) -> None:
        """
        Drop held cart items of a product until its reservations fit the
        stock again. Items above the new stock go first, then the most
        recently added ones. Each affected cart gets a version bump so an
        in-flight cart write against it retries from fresh data.
        """
        stock, reserved = self.session.exec(
            select(Product.stock, Product.reserved).where(Product.id == product_id)
        ).one()
        excess = reserved - stock
        if excess <= 0:
            return

        items = self.session.exec(
            select(CartItem).where(CartItem.product_id == product_id)
        ).all()
        items = sorted(items, key=lambda i: (i.quantity <= stock, -i.id))

        ledger = StockLedger(self.session)
        dropped = []
        for item in items:
            if excess <= 0:
                break
            ledger.release(product_id, item.quantity)
            self.session.exec(
                update(Cart)
                .where(Cart.id == item.cart_id)
                .values(version=Cart.version + 1, updated_at=datetime.now(timezone.utc))
            )
            self.session.delete(item)
            excess -= item.quantity
            dropped.append(item.id)

        logger.warning(
            f"Stock of product {product_id} fell below its reservations, "
            f"dropped cart items {dropped}"
        )

    def create_product(self, data: ProductCreate) -> ProductRead:
        product = Product(**data.model_dump(), is_active=True)
        product = self._save(product)
        self._invalidate(LISTINGS, SEARCH, CATEGORIES)
        logger.info(f"Created new product with id: {product.id}")
        return ProductRead.model_validate(product)

    def update_product(self, product_id: int, data: ProductUpdate) -> ProductRead:
        product = self._get_for_update(product_id)
        for field, value in data.model_dump().items():
            setattr(product, field, value)
        product = self._save_with_reconcile(product)
        self._invalidate(LISTINGS, SEARCH, CATEGORIES, LOOKUP)
        logger.info(f"Updated product with id: {product.id}")
        return ProductRead.model_validate(product)

    def delete_product(self, product_id: int) -> None:
        product = self._get_for_update(product_id)
        product.is_active = False
        self._save(product)
        self._invalidate(*PARTITIONS)
        logger.info(f"Soft deleted product with id: {product_id}")

    def activate_product(self, product_id: int) -> ProductRead:
        product = self._get_for_update(product_id)
        product.is_active = True
        product = self._save(product)
        self._invalidate(*PARTITIONS)
        logger.info(f"Reactivated product with id: {product_id}")
        return ProductRead.model_validate(product)

    def update_stock(self, product_id: int, stock: int) -> ProductRead:
        if stock < 0:
            raise ValidationError("Stock must not be negative")
        product = self._get_for_update(product_id)
        product.stock = stock
        product = self._save_with_reconcile(product)
        self._invalidate(LISTINGS, SEARCH, LOOKUP)
        logger.info(f"Updated stock for product id: {product_id} to {stock}")
        return ProductRead.model_validate(product)

    def get_product_record(self, product_id: int) -> Optional[Product]:
        """Uncached point lookup, inactive products included."""
        return self.session.get(Product, product_id)
