"""
Storefront — Wishlist ledger
"""
import logging
import math

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.errors import NotFound
from storefront.db.database import utcnow
from storefront.models import DEFAULT_WISHLIST_NAME, Product, Wishlist, WishlistItem
from storefront.schemas.wishlist import WishlistSort

logger = logging.getLogger(__name__)

WISHLIST_SORTS = {
    WishlistSort.NEWEST: (WishlistItem.added_at.desc(),),
    WishlistSort.PRICE_ASC: (Product.price.asc(),),
    WishlistSort.PRICE_DESC: (Product.price.desc(),),
    WishlistSort.NAME_ASC: (Product.name.asc(),),
    WishlistSort.NAME_DESC: (Product.name.desc(),),
}


def discount_percent(price: float, original_price: float | None) -> int:
    if original_price and original_price > price > 0:
        return round((original_price - price) / original_price * 100)
    return 0


async def default_wishlist(db: AsyncSession, user_id: str) -> Wishlist:
    stmt = select(Wishlist).where(
        Wishlist.user_id == user_id,
        Wishlist.is_default.is_(True),
        Wishlist.is_deleted.is_(False),
    )
    wishlist = (await db.execute(stmt)).scalars().first()
    if wishlist is not None:
        return wishlist

    db.add(Wishlist(user_id=user_id, name=DEFAULT_WISHLIST_NAME, is_default=True))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
    return (await db.execute(stmt)).scalars().one()


async def get_page(
    db: AsyncSession,
    user_id: str,
    page: int = 1,
    page_size: int = 10,
    sort_by: WishlistSort = WishlistSort.NEWEST,
) -> tuple[Wishlist, list[WishlistItem], dict]:
    wishlist = await default_wishlist(db, user_id)

    total = (
        await db.execute(
            select(func.count()).select_from(WishlistItem).where(WishlistItem.wishlist_id == wishlist.id)
        )
    ).scalar_one()

    stmt = (
        select(WishlistItem)
        .join(Product, WishlistItem.product_id == Product.id)
        .where(WishlistItem.wishlist_id == wishlist.id)
        .options(selectinload(WishlistItem.product).selectinload(Product.category))
        .order_by(*WISHLIST_SORTS[sort_by], WishlistItem.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
        .execution_options(populate_existing=True)
    )
    items = list((await db.execute(stmt)).scalars().all())

    pages = math.ceil(total / page_size)
    pagination = {
        "total_items": total,
        "total_pages": pages,
        "current_page": page,
        "page_size": page_size,
        "has_next_page": page < pages,
    }
    return wishlist, items, pagination


async def add_products(db: AsyncSession, user_id: str, product_ids: list[str]) -> dict:
    """
    Add products to the default wishlist. Ids already present, unknown or
    inactive are skipped and counted; NotFound only when nothing is addable.
    """
    wishlist = await default_wishlist(db, user_id)

    valid_ids = set(
        (
            await db.execute(
                select(Product.id).where(Product.id.in_(product_ids), Product.is_active.is_(True))
            )
        ).scalars().all()
    )
    invalid_ids = [pid for pid in product_ids if pid not in valid_ids]
    if not valid_ids:
        raise NotFound("No valid products found", {"invalidProductIds": invalid_ids})

    present = set(
        (
            await db.execute(
                select(WishlistItem.product_id).where(
                    WishlistItem.wishlist_id == wishlist.id,
                    WishlistItem.product_id.in_(valid_ids),
                )
            )
        ).scalars().all()
    )
    to_add = [pid for pid in product_ids if pid in valid_ids and pid not in present]
    for pid in to_add:
        db.add(WishlistItem(wishlist_id=wishlist.id, product_id=pid))
    if to_add:
        wishlist.updated_at = utcnow()
    await db.commit()

    return {
        "wishlist": wishlist,
        "added": len(to_add),
        "already_present": len(present),
        "invalid": len(invalid_ids),
        "invalid_product_ids": invalid_ids,
    }


async def annotate_item(db: AsyncSession, user_id: str, item_id: str, fields: dict) -> WishlistItem:
    """Set rating and/or notes on an item, scoped to the caller's wishlists in one UPDATE."""
    owned_lists = select(Wishlist.id).where(Wishlist.user_id == user_id)
    result = await db.execute(
        update(WishlistItem)
        .where(WishlistItem.id == item_id, WishlistItem.wishlist_id.in_(owned_lists))
        .values(**fields, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise NotFound("Wishlist item not found")
    await db.commit()

    stmt = (
        select(WishlistItem)
        .where(WishlistItem.id == item_id)
        .options(selectinload(WishlistItem.product).selectinload(Product.category))
        .execution_options(populate_existing=True)
    )
    return (await db.execute(stmt)).scalar_one()


async def remove_product(db: AsyncSession, user_id: str, product_id: str) -> None:
    wishlist = await default_wishlist(db, user_id)
    item = (
        await db.execute(
            select(WishlistItem).where(
                WishlistItem.wishlist_id == wishlist.id, WishlistItem.product_id == product_id
            )
        )
    ).scalar_one_or_none()
    if item is None:
        raise NotFound("Product not in wishlist")
    await db.delete(item)
    await db.commit()
