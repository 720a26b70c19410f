"""
Storefront — Cart ledger

cart.total is maintained incrementally on every mutation and reconciled
against the line items whenever the cart is read.
"""
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.errors import NotFound, ValidationFailed
from storefront.models import Cart, CartItem, Product

logger = logging.getLogger(__name__)


def money(value: float) -> float:
    return round(value, 2)


def computed_total(cart: Cart) -> float:
    return money(sum(item.line_total for item in cart.items))


async def load_cart(db: AsyncSession, user_id: str) -> Cart:
    """Fetch the user's cart with items and products, creating an empty one if missing."""
    stmt = (
        select(Cart)
        .where(Cart.user_id == user_id)
        .options(selectinload(Cart.items).selectinload(CartItem.product))
        .execution_options(populate_existing=True)
    )
    cart = (await db.execute(stmt)).scalar_one_or_none()
    if cart is not None:
        return cart

    db.add(Cart(user_id=user_id, total=0.0))
    try:
        await db.commit()
    except IntegrityError:
        # created concurrently by another request
        await db.rollback()
    return (await db.execute(stmt)).scalar_one()


async def get_cart(db: AsyncSession, user_id: str) -> Cart:
    cart = await load_cart(db, user_id)
    expected = computed_total(cart)
    if abs(cart.total - expected) > 0.005:
        logger.warning("Cart %s total drifted (%.2f != %.2f); reconciling", cart.id, cart.total, expected)
        cart.total = expected
        await db.commit()
    return cart


def _find_line(cart: Cart, product_id: str) -> CartItem | None:
    return next((i for i in cart.items if i.product_id == product_id), None)


async def _active_product(db: AsyncSession, product_id: str) -> Product:
    product = await db.get(Product, product_id, populate_existing=True)
    if product is None or not product.is_active:
        raise NotFound("Product not found")
    return product


def _check_stock(product: Product, wanted: int) -> None:
    if wanted > product.stock:
        raise ValidationFailed(
            f"Only {product.stock} unit(s) of '{product.name}' available",
            {"quantity": f"exceeds available stock ({product.stock})"},
        )


async def add_item(db: AsyncSession, user_id: str, product_id: str, quantity: int) -> Cart:
    cart = await load_cart(db, user_id)
    product = await _active_product(db, product_id)

    line = _find_line(cart, product_id)
    if line is not None:
        _check_stock(product, line.quantity + quantity)
        line.quantity += quantity
        cart.total = money(cart.total + line.price_at_time * quantity)
    else:
        _check_stock(product, quantity)
        cart.items.append(
            CartItem(product_id=product.id, product=product, quantity=quantity, price_at_time=product.price)
        )
        cart.total = money(cart.total + product.price * quantity)

    await db.commit()
    return await load_cart(db, user_id)


async def set_quantity(db: AsyncSession, user_id: str, product_id: str, quantity: int) -> Cart:
    if quantity == 0:
        return await remove_item(db, user_id, product_id)

    cart = await load_cart(db, user_id)
    line = _find_line(cart, product_id)
    if line is None:
        raise NotFound("Item not found in cart")
    product = await _active_product(db, product_id)
    _check_stock(product, quantity)

    cart.total = money(cart.total + (quantity - line.quantity) * line.price_at_time)
    line.quantity = quantity
    await db.commit()
    return await load_cart(db, user_id)


async def remove_item(db: AsyncSession, user_id: str, product_id: str) -> Cart:
    cart = await load_cart(db, user_id)
    line = _find_line(cart, product_id)
    if line is None:
        raise NotFound("Item not found in cart")

    cart.total = max(0.0, money(cart.total - line.line_total))
    cart.items.remove(line)
    await db.commit()
    return await load_cart(db, user_id)


async def clear_cart(db: AsyncSession, user_id: str) -> Cart:
    cart = await load_cart(db, user_id)
    cart.items.clear()
    cart.total = 0.0
    await db.commit()
    return await load_cart(db, user_id)
