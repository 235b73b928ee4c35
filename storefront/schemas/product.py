from typing import Generic, List, Optional, TypeVar
from decimal import Decimal
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    stock: int = Field(..., ge=0)
    category: Optional[str] = None
    image_url: Optional[str] = None


class ProductUpdate(ProductCreate):
    """Full replacement of the editable fields, same shape as create."""


class StockUpdate(BaseModel):
    stock: int = Field(..., ge=0)


class ProductRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str]
    price: Decimal
    stock: int
    category: Optional[str]
    rating: Decimal
    image_url: Optional[str]
    is_active: bool
    created_at: datetime
    updated_at: datetime


class SearchFilters(BaseModel):
    """Every filter value of a product search; absent filters stay None."""

    model_config = ConfigDict(frozen=True)

    category: Optional[str] = None
    name: Optional[str] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    min_rating: Optional[Decimal] = None


class Page(BaseModel, Generic[T]):
    items: List[T]
    page: int
    size: int
    total: int
    total_pages: int
