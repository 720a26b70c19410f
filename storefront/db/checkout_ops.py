"""
Storefront — Checkout engine

Turns the caller's cart into an Order inside a single transaction:
validate stock, price the cart, apply a coupon, write the order and its
items, decrement product stock, record the pending payment and empty the
cart. Product rows are version-checked at flush; a concurrent stock change
aborts the transaction and the whole checkout is re-run.
"""
import logging
from datetime import timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.config import get_settings
from storefront.core.errors import EmptyCart, NotFound, OutOfStock
from storefront.core.optimistic_lock import with_optimistic_retry
from storefront.db.catalog_ops import log_stock_change
from storefront.db.database import utcnow
from storefront.models import (
    Address,
    Cart,
    CartItem,
    Coupon,
    DiscountType,
    Order,
    OrderItem,
    OrderStatus,
    Payment,
    PaymentStatus,
)
from storefront.schemas.order import CheckoutRequest

settings = get_settings()
logger = logging.getLogger(__name__)


def _money(value: float) -> float:
    return round(value, 2)


def coupon_applies(coupon: Coupon, subtotal: float, now=None) -> bool:
    if not coupon.is_active:
        return False
    now = now or utcnow()
    if coupon.expires_at is not None:
        expires_at = coupon.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at <= now:
            return False
    if coupon.min_purchase and subtotal < coupon.min_purchase:
        return False
    if coupon.max_redemptions is not None and coupon.times_redeemed >= coupon.max_redemptions:
        return False
    return True


def coupon_discount(coupon: Coupon, subtotal: float) -> float:
    if coupon.discount_type == DiscountType.PERCENTAGE:
        return subtotal * coupon.discount_value / 100
    if coupon.discount_type == DiscountType.FIXED:
        return min(coupon.discount_value, subtotal)
    return 0.0


def price_order(subtotal: float, coupon: Coupon | None) -> dict[str, float]:
    """Discount, tax, shipping and total for a subtotal and an already-validated coupon."""
    discount = coupon_discount(coupon, subtotal) if coupon else 0.0
    shipping_fee = settings.SHIPPING_FEE
    if coupon is not None and coupon.discount_type == DiscountType.FREE_SHIPPING:
        shipping_fee = 0.0
    subtotal = _money(subtotal)
    discount = _money(discount)
    tax = _money((subtotal - discount) * settings.TAX_RATE)
    total = _money(subtotal - discount + shipping_fee + tax)
    return {
        "subtotal": subtotal,
        "discount": discount,
        "tax": tax,
        "shipping_fee": _money(shipping_fee),
        "total": total,
    }


async def _owned_address(db: AsyncSession, user_id: str, address_id: str, label: str) -> Address:
    address = (
        await db.execute(select(Address).where(Address.id == address_id, Address.user_id == user_id))
    ).scalar_one_or_none()
    if address is None:
        raise NotFound(f"{label} address not found")
    return address


async def _lookup_coupon(db: AsyncSession, code: str | None, subtotal: float) -> Coupon | None:
    if not code:
        return None
    coupon = (
        await db.execute(select(Coupon).where(Coupon.code == code.strip()))
    ).scalar_one_or_none()
    if coupon is None or not coupon_applies(coupon, subtotal):
        logger.info("Coupon %r ignored at checkout", code)
        return None
    return coupon


async def load_order(db: AsyncSession, order_id: str) -> Order | None:
    stmt = (
        select(Order)
        .where(Order.id == order_id)
        .options(
            selectinload(Order.items).selectinload(OrderItem.product),
            selectinload(Order.shipping_address),
            selectinload(Order.billing_address),
        )
        .execution_options(populate_existing=True)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


@with_optimistic_retry()
async def place_order(db: AsyncSession, user_id: str, payload: CheckoutRequest) -> Order:
    try:
        cart = (
            await db.execute(
                select(Cart)
                .where(Cart.user_id == user_id)
                .options(selectinload(Cart.items).selectinload(CartItem.product))
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if cart is None or not cart.items:
            raise EmptyCart()

        short = [
            {
                "productId": line.product_id,
                "name": line.product.name,
                "requested": line.quantity,
                "available": line.product.stock if line.product.is_active else 0,
            }
            for line in cart.items
            if not line.product.is_active or line.quantity > line.product.stock
        ]
        if short:
            raise OutOfStock(short)

        shipping = await _owned_address(db, user_id, payload.shipping_address_id, "Shipping")
        billing = shipping
        if payload.billing_address_id and payload.billing_address_id != shipping.id:
            billing = await _owned_address(db, user_id, payload.billing_address_id, "Billing")

        subtotal = sum(line.quantity * line.price_at_time for line in cart.items)
        coupon = await _lookup_coupon(db, payload.coupon_code, subtotal)
        amounts = price_order(subtotal, coupon)

        order = Order(
            user_id=user_id,
            status=OrderStatus.PENDING,
            payment_method=payload.payment_method,
            payment_status=PaymentStatus.PENDING,
            shipping_address_id=shipping.id,
            billing_address_id=billing.id,
            coupon_id=coupon.id if coupon else None,
            notes=payload.notes,
            **amounts,
        )
        for line in cart.items:
            product = line.product
            order.items.append(
                OrderItem(
                    product_id=product.id,
                    quantity=line.quantity,
                    price=line.price_at_time,
                    original_price=product.original_price or product.price,
                )
            )
            product.stock -= line.quantity
            log_stock_change(db, product.id, -line.quantity, "Order checkout", user_id)
        db.add(order)
        await db.flush()

        db.add(Payment(order_id=order.id, amount=order.total, method=order.payment_method))
        if coupon is not None:
            coupon.times_redeemed += 1
        cart.items.clear()
        cart.total = 0.0

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Order %s placed by %s (total %.2f)", order.id, user_id, order.total)
    return await load_order(db, order.id)
