"""
Catalog service — categories, products and color/size variants.
"""

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Category, Order, OrderItem, Product, ProductVariant
from domain.enums import OrderStatus
from domain.errors import ConflictError, NotFoundError, ValidationError


def effective_price(product: Product) -> float:
    """Sale price when the product is on sale, list price otherwise."""
    if product.on_sale and product.sale_price is not None and product.sale_price > 0:
        return product.sale_price
    return product.price


def serialize_product(product: Product, variants: list[ProductVariant] | None = None) -> dict:
    data = {
        "id": product.id,
        "name": product.name,
        "description": product.description,
        "imageUrl": product.image_url,
        "categoryId": product.category_id,
        "price": product.price,
        "salePrice": product.sale_price,
        "onSale": product.on_sale,
        "effectivePrice": effective_price(product),
        "stock": product.stock,
        "active": product.active,
    }
    if variants is not None:
        data["variants"] = [
            {"id": v.id, "color": v.color, "size": v.size, "stock": v.stock, "sku": v.sku}
            for v in variants
        ]
    return data


# ── Categories ──────────────────────────────────────────────────────

async def create_category(db: AsyncSession, *, name: str, description: str | None = None) -> Category:
    existing = await db.execute(select(Category).where(Category.name == name))
    if existing.scalar_one_or_none():
        raise ConflictError(f"Category already exists: {name}")
    category = Category(name=name, description=description)
    db.add(category)
    await db.flush()
    return category


async def list_categories(db: AsyncSession) -> list[Category]:
    res = await db.execute(select(Category).order_by(Category.name))
    return res.scalars().all()


# ── Products ────────────────────────────────────────────────────────

async def create_product(
    db: AsyncSession,
    *,
    name: str,
    price: float,
    description: str | None = None,
    image_url: str | None = None,
    category_id: int | None = None,
    sale_price: float | None = None,
    on_sale: bool = False,
    stock: int = 0,
    active: bool = True,
) -> Product:
    if category_id is not None and await db.get(Category, category_id) is None:
        raise NotFoundError("Category", str(category_id))
    product = Product(
        name=name,
        description=description,
        image_url=image_url,
        category_id=category_id,
        price=price,
        sale_price=sale_price,
        on_sale=on_sale,
        stock=stock,
        active=active,
    )
    db.add(product)
    await db.flush()
    return product


async def get_product(db: AsyncSession, *, product_id: int, include_inactive: bool = False) -> Product:
    product = await db.get(Product, product_id)
    if not product or (not product.active and not include_inactive):
        raise NotFoundError("Product", str(product_id))
    return product


async def list_products(
    db: AsyncSession,
    *,
    category_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Product], int]:
    """Active products, newest first, plus the total count for pagination."""
    conditions = [Product.active == True]  # noqa: E712
    if category_id is not None:
        conditions.append(Product.category_id == category_id)

    total = await db.scalar(select(func.count()).select_from(Product).where(*conditions))
    res = await db.execute(
        select(Product)
        .where(*conditions)
        .order_by(Product.created_at.desc(), Product.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return res.scalars().all(), total or 0


async def update_product(db: AsyncSession, *, product_id: int, **fields) -> Product:
    """Update only the fields passed with a non-None value."""
    product = await get_product(db, product_id=product_id, include_inactive=True)

    if fields.get("category_id") is not None and await db.get(Category, fields["category_id"]) is None:
        raise NotFoundError("Category", str(fields["category_id"]))

    allowed = {
        "name", "description", "image_url", "category_id", "price",
        "sale_price", "on_sale", "stock", "active",
    }
    for key, value in fields.items():
        if key not in allowed:
            raise ValidationError(f"Unknown product field: {key}")
        if value is not None:
            setattr(product, key, value)

    product.updated_at = datetime.utcnow()
    await db.flush()
    return product


async def soft_delete_product(db: AsyncSession, *, product_id: int) -> Product:
    """Deactivate a product. Refused while unpaid orders still reference it."""
    product = await get_product(db, product_id=product_id, include_inactive=True)

    pending = await db.scalar(
        select(func.count(OrderItem.id))
        .join(Order, OrderItem.order_id == Order.id)
        .where(
            OrderItem.product_id == product_id,
            Order.status == OrderStatus.PENDING.value,
        )
    )
    if pending:
        raise ConflictError(
            f"Cannot delete product {product.name}: {pending} pending order line(s) exist"
        )

    product.active = False
    product.updated_at = datetime.utcnow()
    await db.flush()
    return product


# ── Variants ────────────────────────────────────────────────────────

async def list_variants(db: AsyncSession, *, product_id: int) -> list[ProductVariant]:
    res = await db.execute(
        select(ProductVariant)
        .where(ProductVariant.product_id == product_id)
        .order_by(ProductVariant.color, ProductVariant.size)
    )
    return res.scalars().all()


async def set_variants(db: AsyncSession, *, product_id: int, variants: list[dict]) -> list[ProductVariant]:
    """
    Upsert variants by (color, size); combinations not listed are removed.

    Product stock becomes the sum of variant stock.
    """
    product = await get_product(db, product_id=product_id, include_inactive=True)

    seen = set()
    for v in variants:
        key = (v["color"], v["size"])
        if key in seen:
            raise ValidationError(f"Duplicate variant {v['color']}/{v['size']}")
        seen.add(key)

    existing = {(v.color, v.size): v for v in await list_variants(db, product_id=product_id)}
    for key, variant in existing.items():
        if key not in seen:
            await db.delete(variant)

    for v in variants:
        row = existing.get((v["color"], v["size"]))
        if row is None:
            row = ProductVariant(product_id=product_id, color=v["color"], size=v["size"])
            db.add(row)
        row.stock = v.get("stock", 0)
        row.sku = v.get("sku")

    product.stock = sum(v.get("stock", 0) for v in variants) if variants else product.stock
    product.updated_at = datetime.utcnow()
    await db.flush()
    return await list_variants(db, product_id=product_id)
