from typing import List, Optional
from decimal import Decimal
from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from storefront.core.config import settings
from storefront.db.session import get_session
from storefront.schemas.product import Page, ProductRead, SearchFilters
from storefront.services.product import ProductService

router = APIRouter()

def get_product_service(session: Session = Depends(get_session)) -> ProductService:
    return ProductService(session)

@router.get("/", response_model=Page[ProductRead])
def list_products(
    page: int = Query(0, ge=0),
    size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    service: ProductService = Depends(get_product_service),
):
    """Active products, one page at a time"""
    return service.list_products(page, size)

@router.get("/categories", response_model=List[str])
def list_categories(service: ProductService = Depends(get_product_service)):
    return service.list_categories()

@router.get("/search", response_model=Page[ProductRead])
def search_products(
    category: Optional[str] = None,
    name: Optional[str] = None,
    min_price: Optional[Decimal] = Query(None, ge=0),
    max_price: Optional[Decimal] = Query(None, ge=0),
    min_rating: Optional[Decimal] = Query(None, ge=0, le=5),
    page: int = Query(0, ge=0),
    size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    service: ProductService = Depends(get_product_service),
):
    filters = SearchFilters(
        category=category,
        name=name,
        min_price=min_price,
        max_price=max_price,
        min_rating=min_rating,
    )
    return service.search_products(filters, page, size)

@router.get("/{product_id}", response_model=ProductRead)
def read_product(product_id: int, service: ProductService = Depends(get_product_service)):
    return service.get_product(product_id)
