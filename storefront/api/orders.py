"""
Storefront — Orders API

POST /orders runs checkout against the caller's cart. A repeated request
carrying the same Idempotency-Key is answered by IdempotencyMiddleware
without reaching this router.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import get_current_user, require_admin
from storefront.core.responses import success_response
from storefront.db import checkout_ops, order_ops
from storefront.db.database import get_db
from storefront.models import OrderStatus
from storefront.schemas.auth import CurrentUser
from storefront.schemas.common import PageMeta
from storefront.schemas.order import CheckoutRequest, OrderOut, OrderStatusUpdate

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def checkout(
    payload: CheckoutRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    order = await checkout_ops.place_order(db, user.user_id, payload)
    return success_response(
        OrderOut.model_validate(order), "Order placed successfully", status.HTTP_201_CREATED
    )


@router.get("")
async def order_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status_filter: OrderStatus | None = Query(None, alias="status"),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    orders, total = await order_ops.list_orders(db, user.user_id, page, limit, status_filter)
    return success_response(
        {
            "items": [OrderOut.model_validate(o) for o in orders],
            "meta": PageMeta.build(total, page, limit),
        }
    )


@router.get("/{order_id}")
async def order_detail(
    order_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    order = await order_ops.get_order(db, order_id, user)
    return success_response(OrderOut.model_validate(order))


@router.patch("/{order_id}")
async def change_status(
    order_id: str,
    payload: OrderStatusUpdate,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_ops.update_status(db, order_id, payload, admin.user_id)
    return success_response(OrderOut.model_validate(order), f"Order status updated to {order.status.value}")
