"""
Storefront — Product & category schemas
"""
from datetime import datetime

from pydantic import Field, field_validator

from storefront.schemas.common import CamelModel


def split_tags(value):
    if value is None:
        return []
    if isinstance(value, str):
        return [t.strip() for t in value.split(",") if t.strip()]
    return list(value)


def join_tags(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return ",".join(t.strip() for t in value if t and t.strip())


# ─── Categories ────────────────────────────────────────────────────────────────

class CategorySummary(CamelModel):
    id: str
    name: str
    slug: str


class CategoryOut(CategorySummary):
    description: str | None = None
    image: str | None = None
    parent_id: str | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class CategoryNode(CategoryOut):
    product_count: int = 0
    children: list["CategoryNode"] = []


class CategoryDetail(CategoryOut):
    product_count: int = 0
    parent: CategorySummary | None = None
    children: list[CategoryNode] = []


class CategoryCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=191)
    description: str | None = None
    image: str | None = Field(None, max_length=512)
    parent_id: str | None = None


class CategoryUpdate(CamelModel):
    name: str | None = Field(None, min_length=1, max_length=191)
    description: str | None = None
    image: str | None = Field(None, max_length=512)
    parent_id: str | None = None
    is_active: bool | None = None


# ─── Products ──────────────────────────────────────────────────────────────────

class ProductSummary(CamelModel):
    id: str
    name: str
    slug: str
    price: float
    original_price: float | None = None
    images: list = []
    stock: int
    is_active: bool


class ProductOut(ProductSummary):
    description: str
    sku: str | None = None
    tags: list[str] = []
    category_id: str
    brand_id: str | None = None
    supplier_id: str | None = None
    is_featured: bool
    created_at: datetime
    updated_at: datetime
    category: CategorySummary | None = None

    _split_tags = field_validator("tags", mode="before")(split_tags)


class ProductCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=191)
    description: str = ""
    sku: str | None = Field(None, max_length=64)
    price: float = Field(..., ge=0)
    original_price: float | None = Field(None, ge=0)
    stock: int = Field(..., ge=0)
    category_id: str = Field(..., min_length=1)
    brand_id: str | None = None
    supplier_id: str | None = None
    tags: list[str] | str | None = None
    images: list[str] = []
    is_featured: bool = False
    is_active: bool = True


class ProductUpdate(CamelModel):
    name: str | None = Field(None, min_length=1, max_length=191)
    description: str | None = None
    sku: str | None = Field(None, max_length=64)
    price: float | None = Field(None, ge=0)
    original_price: float | None = Field(None, ge=0)
    stock: int | None = Field(None, ge=0)
    category_id: str | None = None
    brand_id: str | None = None
    supplier_id: str | None = None
    tags: list[str] | str | None = None
    images: list[str] | None = None
    is_featured: bool | None = None
    is_active: bool | None = None
