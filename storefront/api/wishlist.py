"""
Storefront — Wishlist routes
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import get_current_user
from storefront.core.responses import success_response
from storefront.db import wishlist_ops
from storefront.db.database import get_db
from storefront.models import Wishlist, WishlistItem
from storefront.schemas.auth import CurrentUser
from storefront.schemas.wishlist import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    WishlistAddRequest,
    WishlistAddResult,
    WishlistItemOut,
    WishlistOut,
    WishlistPagination,
    WishlistProduct,
    WishlistRateRequest,
    WishlistRemoveRequest,
    WishlistSort,
)

router = APIRouter(prefix="/wishlist", tags=["wishlist"])


def item_view(item: WishlistItem) -> WishlistItemOut:
    product = item.product
    return WishlistItemOut(
        id=item.id,
        product_id=item.product_id,
        rating=item.rating,
        notes=item.notes,
        added_at=item.added_at,
        updated_at=item.updated_at,
        product=WishlistProduct.model_validate(product).model_copy(
            update={"discount": wishlist_ops.discount_percent(product.price, product.original_price)}
        ),
    )


def wishlist_view(
    wishlist: Wishlist,
    items: list[WishlistItem] | None = None,
    pagination: dict | None = None,
) -> WishlistOut:
    return WishlistOut(
        id=wishlist.id,
        user_id=wishlist.user_id,
        name=wishlist.name,
        description=wishlist.description,
        is_default=wishlist.is_default,
        is_public=wishlist.is_public,
        created_at=wishlist.created_at,
        updated_at=wishlist.updated_at,
        items=[item_view(i) for i in items or []],
        pagination=WishlistPagination(**pagination) if pagination else None,
    )


@router.get("")
async def view_wishlist(
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, alias="pageSize"),
    sort_by: WishlistSort = Query(WishlistSort.NEWEST, alias="sortBy"),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    wishlist, items, pagination = await wishlist_ops.get_page(db, user.user_id, page, page_size, sort_by)
    return success_response(wishlist_view(wishlist, items, pagination))


@router.post("", status_code=status.HTTP_201_CREATED)
async def add_to_wishlist(
    payload: WishlistAddRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await wishlist_ops.add_products(db, user.user_id, payload.requested_ids)
    body = WishlistAddResult(
        wishlist=wishlist_view(result["wishlist"]),
        added=result["added"],
        already_present=result["already_present"],
        invalid=result["invalid"],
        invalid_product_ids=result["invalid_product_ids"],
    )
    return success_response(
        body, f"{result['added']} product(s) added to wishlist", status.HTTP_201_CREATED
    )


@router.patch("")
async def annotate_wishlist_item(
    payload: WishlistRateRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    fields = payload.model_dump(include={"rating", "notes"}, exclude_unset=True)
    item = await wishlist_ops.annotate_item(db, user.user_id, payload.item_id, fields)
    return success_response(item_view(item), "Wishlist item updated")


@router.delete("")
async def remove_from_wishlist(
    payload: WishlistRemoveRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await wishlist_ops.remove_product(db, user.user_id, payload.product_id)
    return success_response(message="Product removed from wishlist")
