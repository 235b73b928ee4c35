from typing import Dict
from fastapi import APIRouter, Depends, Response
from sqlmodel import Session

from storefront.core.exceptions import NotFoundError
from storefront.db.session import get_session
from storefront.models.user import User
from storefront.routers.auth import get_current_superuser
from storefront.schemas.product import ProductCreate, ProductRead, ProductUpdate, StockUpdate
from storefront.services.product import ProductService

router = APIRouter()

def get_product_service(session: Session = Depends(get_session)) -> ProductService:
    return ProductService(session)

class AdminProductRead(ProductRead):
    """Catalog view for managers, with the units currently held in carts."""

    reserved: int

@router.get("/products/{product_id}", response_model=AdminProductRead)
def get_product(
    product_id: int,
    admin: User = Depends(get_current_superuser),
    service: ProductService = Depends(get_product_service),
):
    """Product record regardless of active flag, never cached"""
    product = service.get_product_record(product_id)
    if not product:
        raise NotFoundError(f"Product not found with id: {product_id}")
    return product

@router.post("/products", response_model=ProductRead, status_code=201)
def create_product(
    product_in: ProductCreate,
    admin: User = Depends(get_current_superuser),
    service: ProductService = Depends(get_product_service),
):
    return service.create_product(product_in)

@router.put("/products/{product_id}", response_model=ProductRead)
def update_product(
    product_id: int,
    product_in: ProductUpdate,
    admin: User = Depends(get_current_superuser),
    service: ProductService = Depends(get_product_service),
):
    return service.update_product(product_id, product_in)

@router.delete("/products/{product_id}", status_code=204)
def delete_product(
    product_id: int,
    admin: User = Depends(get_current_superuser),
    service: ProductService = Depends(get_product_service),
):
    """Soft delete: the product is hidden from the catalog, its record is kept"""
    service.delete_product(product_id)
    return Response(status_code=204)

@router.put("/products/{product_id}/activate", response_model=ProductRead)
def activate_product(
    product_id: int,
    admin: User = Depends(get_current_superuser),
    service: ProductService = Depends(get_product_service),
):
    return service.activate_product(product_id)

@router.put("/products/{product_id}/stock", response_model=ProductRead)
def update_product_stock(
    product_id: int,
    stock_update: StockUpdate,
    admin: User = Depends(get_current_superuser),
    service: ProductService = Depends(get_product_service),
):
    """Update product stock"""
    return service.update_stock(product_id, stock_update.stock)

@router.get("/cache", response_model=Dict[str, Dict[str, int]])
def get_cache_stats(
    admin: User = Depends(get_current_superuser),
    service: ProductService = Depends(get_product_service),
):
    return service.cache.stats()
