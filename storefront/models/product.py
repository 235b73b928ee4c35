from typing import Optional
from decimal import Decimal
from datetime import datetime, timezone
from sqlalchemy import CheckConstraint
from sqlmodel import Field, SQLModel

class Product(SQLModel, table=True):
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_product_stock_non_negative"),
        CheckConstraint("reserved >= 0", name="ck_product_reserved_non_negative"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    # Basic Info
    name: str = Field(index=True)
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, index=True)
    image_url: Optional[str] = None

    # Pricing
    price: Decimal = Field(max_digits=10, decimal_places=2)
    rating: Decimal = Field(default=Decimal("0.00"), max_digits=3, decimal_places=2)

    # Inventory: on-hand units and units currently held in carts.
    # Only StockLedger writes `reserved`.
    stock: int = Field(default=0)
    reserved: int = Field(default=0)

    # Metadata
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
