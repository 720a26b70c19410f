"""
Storefront — Catalog persistence: products, categories and the stock audit trail
"""
import logging
import re

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.errors import CircularReference, Conflict, NotFound, ValidationFailed
from storefront.models import Brand, Category, InventoryLog, InventoryLogType, Product, Supplier
from storefront.schemas.catalog import (
    CategoryCreate,
    CategorySummary,
    CategoryUpdate,
    ProductCreate,
    ProductUpdate,
    join_tags,
)

logger = logging.getLogger(__name__)

PRODUCT_SORT_FIELDS = {
    "createdAt": Product.created_at,
    "updatedAt": Product.updated_at,
    "price": Product.price,
    "name": Product.name,
    "stock": Product.stock,
}

# explicit nulls for these are ignored on update
REQUIRED_PRODUCT_FIELDS = {
    "name", "description", "price", "stock", "category_id", "images", "is_active", "is_featured",
}


def slugify(value: str) -> str:
    slug = value.strip().lower()
    slug = re.sub(r"[^\w\s-]", "", slug, flags=re.ASCII)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-{2,}", "-", slug)
    return slug


def log_stock_change(
    db: AsyncSession,
    product_id: str,
    delta: int,
    note: str | None = None,
    user_id: str | None = None,
    kind: InventoryLogType | None = None,
) -> InventoryLog | None:
    """Append an InventoryLog row for a signed stock delta; zero deltas are skipped."""
    if delta == 0:
        return None
    if kind is None:
        kind = InventoryLogType.STOCK_IN if delta > 0 else InventoryLogType.STOCK_OUT
    entry = InventoryLog(
        product_id=product_id, type=kind, quantity=abs(delta), note=note, created_by_id=user_id
    )
    db.add(entry)
    return entry


# ─── Products ──────────────────────────────────────────────────────────────────

async def _ensure_slug_free(db: AsyncSession, model, slug: str, exclude_id: str | None = None):
    stmt = select(model.id).where(model.slug == slug)
    if exclude_id:
        stmt = stmt.where(model.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise Conflict(f"A {model.__name__.lower()} with slug '{slug}' already exists")


async def _ensure_category(db: AsyncSession, category_id: str) -> Category:
    category = await db.get(Category, category_id)
    if category is None:
        raise NotFound("Category not found")
    return category


async def _ensure_references(db: AsyncSession, data: dict) -> None:
    """Brand and supplier ids must point at existing rows."""
    for field, model, wire_name in (("brand_id", Brand, "brandId"), ("supplier_id", Supplier, "supplierId")):
        ref = data.get(field)
        if ref and await db.get(model, ref) is None:
            raise NotFound(f"{model.__name__} not found", {wire_name: "unknown id"})


async def get_product(db: AsyncSession, product_id: str, active_only: bool = False) -> Product:
    stmt = (
        select(Product)
        .where(Product.id == product_id)
        .options(selectinload(Product.category))
        .execution_options(populate_existing=True)
    )
    if active_only:
        stmt = stmt.where(Product.is_active.is_(True))
    product = (await db.execute(stmt)).scalar_one_or_none()
    if product is None:
        raise NotFound("Product not found")
    return product


async def list_products(
    db: AsyncSession,
    *,
    page: int = 1,
    limit: int = 10,
    category_id: str | None = None,
    brand_id: str | None = None,
    supplier_id: str | None = None,
    min_price: float | None = None,
    max_price: float | None = None,
    tags: str | None = None,
    search: str | None = None,
    is_featured: bool | None = None,
    is_active: bool | None = True,
    sort_by: str = "createdAt",
    sort_order: str = "desc",
) -> tuple[list[Product], int]:
    conditions = []
    if category_id:
        conditions.append(Product.category_id == category_id)
    if brand_id:
        conditions.append(Product.brand_id == brand_id)
    if supplier_id:
        conditions.append(Product.supplier_id == supplier_id)
    if min_price is not None:
        conditions.append(Product.price >= min_price)
    if max_price is not None:
        conditions.append(Product.price <= max_price)
    if tags:
        conditions.append(Product.tags.ilike(f"%{tags}%"))
    if search:
        pattern = f"%{search}%"
        conditions.append(
            or_(
                Product.name.ilike(pattern),
                Product.description.ilike(pattern),
                Product.tags.ilike(pattern),
            )
        )
    if is_featured is not None:
        conditions.append(Product.is_featured.is_(is_featured))
    if is_active is not None:
        conditions.append(Product.is_active.is_(is_active))

    total = (
        await db.execute(select(func.count()).select_from(Product).where(*conditions))
    ).scalar_one()

    column = PRODUCT_SORT_FIELDS.get(sort_by, Product.created_at)
    order = column.asc() if sort_order.lower() == "asc" else column.desc()
    stmt = (
        select(Product)
        .where(*conditions)
        .options(selectinload(Product.category))
        .order_by(order, Product.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = list((await db.execute(stmt)).scalars().all())
    return items, total


async def create_product(db: AsyncSession, payload: ProductCreate, user_id: str) -> Product:
    slug = slugify(payload.name)
    if not slug:
        raise ValidationFailed("Product name must contain letters or digits", {"name": "invalid"})
    await _ensure_slug_free(db, Product, slug)
    await _ensure_category(db, payload.category_id)
    await _ensure_references(db, payload.model_dump())

    data = payload.model_dump(exclude={"tags"})
    product = Product(**data, slug=slug, tags=join_tags(payload.tags) or "")
    db.add(product)
    try:
        await db.flush()
        if product.stock > 0:
            log_stock_change(db, product.id, product.stock, "Initial stock", user_id)
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise Conflict("Product already exists (duplicate slug or SKU)") from exc

    logger.info("Product %s created (%s) by %s", product.id, slug, user_id)
    return await get_product(db, product.id)


async def update_product(
    db: AsyncSession, product_id: str, payload: ProductUpdate, user_id: str
) -> Product:
    product = await get_product(db, product_id)
    changes = payload.model_dump(exclude_unset=True)

    if changes.get("name") and changes["name"] != product.name:
        slug = slugify(changes["name"])
        if not slug:
            raise ValidationFailed("Product name must contain letters or digits", {"name": "invalid"})
        await _ensure_slug_free(db, Product, slug, exclude_id=product.id)
        product.slug = slug
    if changes.get("category_id"):
        await _ensure_category(db, changes["category_id"])
    await _ensure_references(db, changes)
    if "tags" in changes:
        changes["tags"] = join_tags(changes["tags"]) or ""

    old_stock = product.stock
    for field, value in changes.items():
        if value is None and field in REQUIRED_PRODUCT_FIELDS:
            continue
        setattr(product, field, value)

    log_stock_change(db, product.id, product.stock - old_stock, "Manual stock update", user_id)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise Conflict("Product already exists (duplicate slug or SKU)") from exc
    return await get_product(db, product.id)


async def soft_delete_product(db: AsyncSession, product_id: str) -> None:
    product = await get_product(db, product_id)
    product.is_active = False
    await db.commit()
    logger.info("Product %s deactivated", product_id)


# ─── Categories ────────────────────────────────────────────────────────────────

async def _active_product_counts(db: AsyncSession) -> dict[str, int]:
    rows = await db.execute(
        select(Product.category_id, func.count(Product.id))
        .where(Product.is_active.is_(True))
        .group_by(Product.category_id)
    )
    return {category_id: count for category_id, count in rows.all()}


def _node(category: Category, counts: dict[str, int], by_parent: dict) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "slug": category.slug,
        "description": category.description,
        "image": category.image,
        "parent_id": category.parent_id,
        "is_active": category.is_active,
        "created_at": category.created_at,
        "updated_at": category.updated_at,
        "product_count": counts.get(category.id, 0),
        "children": [_node(c, counts, by_parent) for c in by_parent.get(category.id, [])],
    }


async def category_tree(db: AsyncSession) -> list[dict]:
    """Active categories as nested nodes rooted at parentless categories."""
    categories = (
        await db.execute(
            select(Category).where(Category.is_active.is_(True)).order_by(Category.name)
        )
    ).scalars().all()
    counts = await _active_product_counts(db)
    active_ids = {c.id for c in categories}

    by_parent: dict[str | None, list[Category]] = {}
    for category in categories:
        # orphans under an inactive parent surface at the root
        parent = category.parent_id if category.parent_id in active_ids else None
        by_parent.setdefault(parent, []).append(category)
    return [_node(c, counts, by_parent) for c in by_parent.get(None, [])]


async def get_category(db: AsyncSession, category_id: str) -> Category:
    category = await db.get(Category, category_id, populate_existing=True)
    if category is None:
        raise NotFound("Category not found")
    return category


async def category_detail(db: AsyncSession, category_id: str) -> dict:
    category = await get_category(db, category_id)
    counts = await _active_product_counts(db)
    children = (
        await db.execute(
            select(Category)
            .where(Category.parent_id == category.id, Category.is_active.is_(True))
            .order_by(Category.name)
        )
    ).scalars().all()
    parent = await db.get(Category, category.parent_id) if category.parent_id else None

    detail = _node(category, counts, {})
    detail["children"] = [_node(c, counts, {}) for c in children]
    detail["parent"] = CategorySummary.model_validate(parent) if parent else None
    return detail


async def assert_no_cycle(db: AsyncSession, category_id: str, new_parent_id: str) -> None:
    """Walk up from the proposed parent; reaching category_id means a cycle."""
    if new_parent_id == category_id:
        raise CircularReference("A category cannot be its own parent")
    seen: set[str] = set()
    current: str | None = new_parent_id
    while current is not None:
        if current == category_id:
            raise CircularReference()
        if current in seen:
            # pre-existing loop above us; refuse rather than walk forever
            raise CircularReference()
        seen.add(current)
        current = (
            await db.execute(select(Category.parent_id).where(Category.id == current))
        ).scalar_one_or_none()


async def create_category(db: AsyncSession, payload: CategoryCreate) -> Category:
    slug = slugify(payload.name)
    if not slug:
        raise ValidationFailed("Category name must contain letters or digits", {"name": "invalid"})
    await _ensure_slug_free(db, Category, slug)
    if payload.parent_id:
        await get_category(db, payload.parent_id)

    category = Category(**payload.model_dump(), slug=slug)
    db.add(category)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise Conflict(f"A category with slug '{slug}' already exists") from exc
    return category


async def update_category(db: AsyncSession, category_id: str, payload: CategoryUpdate) -> Category:
    category = await get_category(db, category_id)
    changes = payload.model_dump(exclude_unset=True)

    if changes.get("name") and changes["name"] != category.name:
        slug = slugify(changes["name"])
        if not slug:
            raise ValidationFailed("Category name must contain letters or digits", {"name": "invalid"})
        await _ensure_slug_free(db, Category, slug, exclude_id=category.id)
        category.slug = slug

    if "parent_id" in changes and changes["parent_id"] != category.parent_id:
        new_parent = changes["parent_id"]
        if new_parent is not None:
            await get_category(db, new_parent)
            await assert_no_cycle(db, category.id, new_parent)

    for field, value in changes.items():
        if value is None and field in ("name", "is_active"):
            continue
        setattr(category, field, value)

    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise Conflict("A category with this slug already exists") from exc
    return category


async def soft_delete_category(db: AsyncSession, category_id: str) -> None:
    category = await get_category(db, category_id)
    child_count = (
        await db.execute(select(func.count()).select_from(Category).where(Category.parent_id == category.id))
    ).scalar_one()
    if child_count:
        raise ValidationFailed("Cannot delete a category that has subcategories")
    product_count = (
        await db.execute(select(func.count()).select_from(Product).where(Product.category_id == category.id))
    ).scalar_one()
    if product_count:
        raise ValidationFailed("Cannot delete a category that has products")

    category.is_active = False
    await db.commit()
    logger.info("Category %s deactivated", category_id)
