"""
Storefront — Cart schemas
"""
from datetime import datetime

from pydantic import Field

from storefront.schemas.catalog import ProductSummary
from storefront.schemas.common import CamelModel


class AddToCartRequest(CamelModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)


class UpdateCartItemRequest(CamelModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=0)


class RemoveCartItemRequest(CamelModel):
    product_id: str = Field(..., min_length=1)


class CartItemOut(CamelModel):
    id: str
    product_id: str
    quantity: int
    price_at_time: float
    added_at: datetime
    product: ProductSummary


class CartOut(CamelModel):
    id: str
    user_id: str
    total: float
    last_updated: datetime
    items: list[CartItemOut] = []
