"""
Storefront — Order history and status lifecycle
"""
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.errors import Forbidden, InvalidStatusTransition, NotFound
from storefront.core.optimistic_lock import with_optimistic_retry
from storefront.db.catalog_ops import log_stock_change
from storefront.db.checkout_ops import load_order
from storefront.db.database import utcnow
from storefront.models import InventoryLogType, Order, OrderItem, OrderStatus, Product
from storefront.schemas.auth import CurrentUser
from storefront.schemas.order import OrderStatusUpdate

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


async def list_orders(
    db: AsyncSession,
    user_id: str,
    page: int = 1,
    limit: int = 10,
    status: OrderStatus | None = None,
) -> tuple[list[Order], int]:
    conditions = [Order.user_id == user_id]
    if status is not None:
        conditions.append(Order.status == status)

    total = (
        await db.execute(select(func.count()).select_from(Order).where(*conditions))
    ).scalar_one()
    stmt = (
        select(Order)
        .where(*conditions)
        .options(
            selectinload(Order.items).selectinload(OrderItem.product),
            selectinload(Order.shipping_address),
            selectinload(Order.billing_address),
        )
        .order_by(Order.created_at.desc(), Order.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list((await db.execute(stmt)).scalars().all()), total


async def get_order(db: AsyncSession, order_id: str, caller: CurrentUser) -> Order:
    order = await load_order(db, order_id)
    if order is None:
        raise NotFound("Order not found")
    if order.user_id != caller.user_id and not caller.is_admin:
        raise Forbidden("You do not have access to this order")
    return order


@with_optimistic_retry()
async def update_status(
    db: AsyncSession, order_id: str, payload: OrderStatusUpdate, actor_id: str
) -> Order:
    order = await load_order(db, order_id)
    if order is None:
        raise NotFound("Order not found")

    current, target = order.status, payload.status
    if not can_transition(current, target):
        raise InvalidStatusTransition(
            f"Cannot change order status from {current.value} to {target.value}",
            {"status": f"{current.value} -> {target.value} is not allowed"},
        )

    now = utcnow()
    order.status = target
    if target == OrderStatus.SHIPPED:
        order.shipped_at = now
        if payload.tracking_number:
            order.tracking_number = payload.tracking_number
        if payload.carrier:
            order.carrier = payload.carrier
    elif target == OrderStatus.DELIVERED:
        order.delivered_at = now
    elif target == OrderStatus.CANCELLED:
        order.cancelled_at = now
        for item in order.items:
            product: Product = item.product
            product.stock += item.quantity
            log_stock_change(
                db, product.id, item.quantity, f"Order {order.id} cancelled", actor_id,
                kind=InventoryLogType.RETURN,
            )

    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info("Order %s moved %s -> %s by %s", order.id, current.value, target.value, actor_id)
    return await load_order(db, order.id)
