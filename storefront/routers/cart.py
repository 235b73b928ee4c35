from fastapi import APIRouter, Depends
from sqlmodel import Session

from storefront.db.session import get_session
from storefront.models.user import User
from storefront.routers.auth import get_current_user
from storefront.schemas.cart import CartItemCreate, CartItemUpdate, CartView
from storefront.services.cart import CartService

router = APIRouter()

def get_cart_service(session: Session = Depends(get_session)) -> CartService:
    return CartService(session)

@router.get("/", response_model=CartView)
def get_cart(current_user: User = Depends(get_current_user), service: CartService = Depends(get_cart_service)):
    """Get user's cart, dropping items that can no longer be bought"""
    return service.get_cart(current_user.id)

@router.post("/add", response_model=CartView)
def add_to_cart(
    cart_item: CartItemCreate,
    current_user: User = Depends(get_current_user),
    service: CartService = Depends(get_cart_service)
):
    """Add item to cart, merging with an existing line for the same product"""
    return service.add_to_cart(current_user.id, cart_item.product_id, cart_item.quantity)

@router.put("/update/{cart_item_id}", response_model=CartView)
def update_cart_item(
    cart_item_id: int,
    cart_update: CartItemUpdate,
    current_user: User = Depends(get_current_user),
    service: CartService = Depends(get_cart_service)
):
    """Set cart item quantity; zero or less removes it"""
    return service.update_cart_item(current_user.id, cart_item_id, cart_update.quantity)

@router.delete("/remove/{cart_item_id}", response_model=CartView)
def remove_from_cart(
    cart_item_id: int,
    current_user: User = Depends(get_current_user),
    service: CartService = Depends(get_cart_service)
):
    """Remove item from cart"""
    return service.remove_from_cart(current_user.id, cart_item_id)

@router.delete("/clear", response_model=CartView)
def clear_cart(
    current_user: User = Depends(get_current_user),
    service: CartService = Depends(get_cart_service)
):
    """Clear entire cart"""
    return service.clear_cart(current_user.id)
