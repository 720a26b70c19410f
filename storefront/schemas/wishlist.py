"""
Storefront — Wishlist schemas
"""
from datetime import datetime
from enum import Enum

from pydantic import Field, model_validator

from storefront.schemas.catalog import CategorySummary
from storefront.schemas.common import CamelModel

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 50


class WishlistSort(str, Enum):
    NEWEST = "newest"
    PRICE_ASC = "price-asc"
    PRICE_DESC = "price-desc"
    NAME_ASC = "name-asc"
    NAME_DESC = "name-desc"


class WishlistAddRequest(CamelModel):
    """Either a single productId or a productIds batch."""
    product_id: str | None = Field(None, min_length=1)
    product_ids: list[str] | None = Field(None, min_length=1)

    @model_validator(mode="after")
    def _one_of(self):
        if not self.product_id and not self.product_ids:
            raise ValueError("productId or productIds is required")
        return self

    @property
    def requested_ids(self) -> list[str]:
        ids = list(self.product_ids or [])
        if self.product_id:
            ids.insert(0, self.product_id)
        # de-duplicate, keep order
        return list(dict.fromkeys(i for i in ids if i))


class WishlistRateRequest(CamelModel):
    item_id: str = Field(..., min_length=1)
    rating: int | None = Field(None, ge=1, le=5)
    notes: str | None = None

    @model_validator(mode="after")
    def _something_to_update(self):
        if "rating" not in self.model_fields_set and "notes" not in self.model_fields_set:
            raise ValueError("rating or notes is required")
        return self


class WishlistRemoveRequest(CamelModel):
    product_id: str = Field(..., min_length=1)


class WishlistProduct(CamelModel):
    id: str
    name: str
    slug: str
    description: str
    price: float
    original_price: float | None = None
    images: list = []
    stock: int
    is_active: bool
    category: CategorySummary | None = None
    discount: int = 0


class WishlistItemOut(CamelModel):
    id: str
    product_id: str
    rating: int | None = None
    notes: str | None = None
    added_at: datetime
    updated_at: datetime
    product: WishlistProduct


class WishlistPagination(CamelModel):
    total_items: int
    total_pages: int
    current_page: int
    page_size: int
    has_next_page: bool


class WishlistOut(CamelModel):
    id: str
    user_id: str
    name: str
    description: str | None = None
    is_default: bool
    is_public: bool
    created_at: datetime
    updated_at: datetime
    items: list[WishlistItemOut] = []
    pagination: WishlistPagination | None = None


class WishlistAddResult(CamelModel):
    wishlist: WishlistOut
    added: int
    already_present: int
    invalid: int
    invalid_product_ids: list[str] = []
