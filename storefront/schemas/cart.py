from typing import List, Optional
from decimal import Decimal
from pydantic import BaseModel


class CartItemCreate(BaseModel):
    product_id: int
    quantity: int = 1


class CartItemUpdate(BaseModel):
    quantity: int


class CartItemView(BaseModel):
    id: int
    product_id: int
    product_name: str
    product_price: Decimal
    product_image_url: Optional[str]
    quantity: int
    subtotal: Decimal
    available: bool


class CartView(BaseModel):
    id: int
    items: List[CartItemView]
    total_price: Decimal
    total_items: int
