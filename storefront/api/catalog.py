"""
Storefront — Product & category routes

Reads are public; writes need MANAGER or above.
"""
from enum import Enum

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import require_manager
from storefront.core.responses import success_response
from storefront.db import catalog_ops
from storefront.db.database import get_db
from storefront.schemas.auth import CurrentUser
from storefront.schemas.catalog import (
    CategoryCreate,
    CategoryDetail,
    CategoryNode,
    CategoryOut,
    CategoryUpdate,
    ProductCreate,
    ProductOut,
    ProductUpdate,
)
from storefront.schemas.common import PageMeta

products = APIRouter(prefix="/products", tags=["products"])
categories = APIRouter(prefix="/categories", tags=["categories"])


class ProductSort(str, Enum):
    CREATED_AT = "createdAt"
    UPDATED_AT = "updatedAt"
    PRICE = "price"
    NAME = "name"
    STOCK = "stock"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


# ─── Products ──────────────────────────────────────────────────────────────────

@products.get("")
async def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    category_id: str | None = Query(None, alias="categoryId"),
    brand_id: str | None = Query(None, alias="brandId"),
    supplier_id: str | None = Query(None, alias="supplierId"),
    min_price: float | None = Query(None, alias="minPrice", ge=0),
    max_price: float | None = Query(None, alias="maxPrice", ge=0),
    tags: str | None = Query(None),
    search: str | None = Query(None),
    is_featured: bool | None = Query(None, alias="isFeatured"),
    is_active: bool | None = Query(True, alias="isActive"),
    sort_by: ProductSort = Query(ProductSort.CREATED_AT, alias="sortBy"),
    sort_order: SortOrder = Query(SortOrder.DESC, alias="sortOrder"),
    db: AsyncSession = Depends(get_db),
):
    items, total = await catalog_ops.list_products(
        db,
        page=page,
        limit=limit,
        category_id=category_id,
        brand_id=brand_id,
        supplier_id=supplier_id,
        min_price=min_price,
        max_price=max_price,
        tags=tags,
        search=search,
        is_featured=is_featured,
        is_active=is_active,
        sort_by=sort_by.value,
        sort_order=sort_order.value,
    )
    return success_response(
        {
            "items": [ProductOut.model_validate(p) for p in items],
            "meta": PageMeta.build(total, page, limit),
        }
    )


@products.get("/{product_id}")
async def get_product(product_id: str, db: AsyncSession = Depends(get_db)):
    """Inactive products stay retrievable by id for order history."""
    product = await catalog_ops.get_product(db, product_id)
    return success_response(ProductOut.model_validate(product))


@products.post("", status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    user: CurrentUser = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    product = await catalog_ops.create_product(db, payload, user.user_id)
    return success_response(
        ProductOut.model_validate(product), "Product created successfully", status.HTTP_201_CREATED
    )


@products.patch("/{product_id}")
async def update_product(
    product_id: str,
    payload: ProductUpdate,
    user: CurrentUser = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    product = await catalog_ops.update_product(db, product_id, payload, user.user_id)
    return success_response(ProductOut.model_validate(product), "Product updated successfully")


@products.delete("/{product_id}")
async def delete_product(
    product_id: str,
    _: CurrentUser = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    await catalog_ops.soft_delete_product(db, product_id)
    return success_response(message="Product deleted successfully")


# ─── Categories ────────────────────────────────────────────────────────────────

@categories.get("")
async def list_categories(db: AsyncSession = Depends(get_db)):
    tree = await catalog_ops.category_tree(db)
    return success_response([CategoryNode.model_validate(node) for node in tree])


@categories.get("/{category_id}")
async def get_category(category_id: str, db: AsyncSession = Depends(get_db)):
    detail = await catalog_ops.category_detail(db, category_id)
    return success_response(CategoryDetail.model_validate(detail))


@categories.post("", status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: CategoryCreate,
    _: CurrentUser = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    category = await catalog_ops.create_category(db, payload)
    return success_response(
        CategoryOut.model_validate(category), "Category created successfully", status.HTTP_201_CREATED
    )


@categories.patch("/{category_id}")
async def update_category(
    category_id: str,
    payload: CategoryUpdate,
    _: CurrentUser = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    category = await catalog_ops.update_category(db, category_id, payload)
    return success_response(CategoryOut.model_validate(category), "Category updated successfully")


@categories.delete("/{category_id}")
async def delete_category(
    category_id: str,
    _: CurrentUser = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    await catalog_ops.soft_delete_category(db, category_id)
    return success_response(message="Category deleted successfully")
