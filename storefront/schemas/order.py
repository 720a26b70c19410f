"""
Storefront — Checkout & order schemas
"""
from datetime import datetime

from pydantic import Field

from storefront.models import OrderStatus, PaymentMethod, PaymentStatus
from storefront.schemas.common import CamelModel
from storefront.schemas.user import AddressOut


class CheckoutRequest(CamelModel):
    shipping_address_id: str = Field(..., min_length=1)
    billing_address_id: str | None = None
    coupon_code: str | None = None
    payment_method: PaymentMethod
    notes: str | None = Field(None, max_length=2000)


class OrderStatusUpdate(CamelModel):
    status: OrderStatus
    tracking_number: str | None = Field(None, max_length=128)
    carrier: str | None = Field(None, max_length=64)


class OrderProduct(CamelModel):
    id: str
    name: str
    slug: str
    images: list = []


class OrderItemOut(CamelModel):
    id: str
    product_id: str
    quantity: int
    price: float
    original_price: float
    product: OrderProduct | None = None


class OrderOut(CamelModel):
    id: str
    user_id: str
    status: OrderStatus
    subtotal: float
    discount: float
    tax: float
    shipping_fee: float
    total: float
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    shipping_address_id: str
    billing_address_id: str | None = None
    coupon_id: str | None = None
    notes: str | None = None
    tracking_number: str | None = None
    carrier: str | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    items: list[OrderItemOut] = []
    shipping_address: AddressOut | None = None
    billing_address: AddressOut | None = None
