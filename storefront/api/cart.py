"""
Storefront — Cart routes
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import get_current_user
from storefront.core.responses import success_response
from storefront.db import cart_ops
from storefront.db.database import get_db
from storefront.schemas.auth import CurrentUser
from storefront.schemas.cart import (
    AddToCartRequest,
    CartOut,
    RemoveCartItemRequest,
    UpdateCartItemRequest,
)

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("")
async def view_cart(user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    cart = await cart_ops.get_cart(db, user.user_id)
    return success_response(CartOut.model_validate(cart))


@router.post("")
async def add_to_cart(
    payload: AddToCartRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    cart = await cart_ops.add_item(db, user.user_id, payload.product_id, payload.quantity)
    return success_response(CartOut.model_validate(cart), "Item added to cart")


@router.put("")
async def update_cart_item(
    payload: UpdateCartItemRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    cart = await cart_ops.set_quantity(db, user.user_id, payload.product_id, payload.quantity)
    return success_response(CartOut.model_validate(cart), "Cart updated")


@router.delete("/clear")
async def clear_cart(user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    cart = await cart_ops.clear_cart(db, user.user_id)
    return success_response(CartOut.model_validate(cart), "Cart cleared")


@router.delete("")
async def remove_from_cart(
    payload: RemoveCartItemRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    cart = await cart_ops.remove_item(db, user.user_id, payload.product_id)
    return success_response(CartOut.model_validate(cart), "Item removed from cart")
