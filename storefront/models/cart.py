from typing import Optional
from datetime import datetime, timezone
from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

class Cart(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    # One cart per user
    user_id: int = Field(foreign_key="user.id", unique=True, index=True)

    # Bumped by every write to the cart or its items
    version: int = Field(default=1)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class CartItem(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("cart_id", "product_id", name="u_cart_product"),)

    id: Optional[int] = Field(default=None, primary_key=True)

    # References
    cart_id: int = Field(foreign_key="cart.id", index=True, ondelete="CASCADE")
    product_id: int = Field(foreign_key="product.id", index=True)

    # Cart Details
    quantity: int = Field(default=1)

    # Timestamps
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
