"""
Stock reservations — hold units while a MercadoPago payment is pending.

Reservations are keyed by the temporary order reference sent to the payment
provider and expire after `stock_reservation_minutes`. They never touch the
stock columns; the order lifecycle decrements stock when payment is
confirmed and releases the reservations.
"""
import logging
from datetime import datetime, timedelta

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import Product, ProductVariant, StockReservation
from domain.errors import ValidationError

logger = logging.getLogger(__name__)


async def stock_bucket(db: AsyncSession, product_id: int, color: str | None, size: str | None) -> tuple:
    """
    Key a cart line is counted against.

    A line naming the color and size of an existing variant is counted
    against that variant; anything else is counted against the product.
    """
    if color and size:
        variant_id = await db.scalar(
            select(ProductVariant.id).where(
                ProductVariant.product_id == product_id,
                ProductVariant.color == color,
                ProductVariant.size == size,
            )
        )
        if variant_id is not None:
            return (product_id, color, size)
    return (product_id, None, None)


async def _base_stock(db: AsyncSession, product_id: int, color: str | None, size: str | None) -> int:
    if color and size:
        variant_stock = await db.scalar(
            select(ProductVariant.stock).where(
                ProductVariant.product_id == product_id,
                ProductVariant.color == color,
                ProductVariant.size == size,
            )
        )
        if variant_stock is not None:
            return variant_stock
    product = await db.get(Product, product_id)
    return product.stock if product else 0


async def reserved_quantity(
    db: AsyncSession,
    product_id: int,
    color: str | None = None,
    size: str | None = None,
    now: datetime | None = None,
) -> int:
    """Units held by unexpired reservations, for one variant or the whole product."""
    now = now or datetime.utcnow()
    conditions = [
        StockReservation.product_id == product_id,
        StockReservation.expires_at > now,
    ]
    if color and size:
        conditions += [StockReservation.color == color, StockReservation.size == size]
    total = await db.scalar(
        select(func.coalesce(func.sum(StockReservation.quantity), 0)).where(*conditions)
    )
    return int(total or 0)


async def available_stock(
    db: AsyncSession,
    product_id: int,
    color: str | None = None,
    size: str | None = None,
) -> int:
    """Stock minus active reservations, never below zero."""
    product_id, color, size = await stock_bucket(db, product_id, color, size)
    base = await _base_stock(db, product_id, color, size)
    reserved = await reserved_quantity(db, product_id, color, size)
    return max(0, base - reserved)


async def find_shortfall(db: AsyncSession, requested: dict[tuple, int]) -> dict | None:
    """
    First bucket asking for more than is available, or None.

    `requested` maps stock_bucket() keys to quantities. Besides each variant,
    the sum of every line of a product is checked against the product stock.
    """
    per_product: dict[int, int] = {}
    for (product_id, color, size), quantity in requested.items():
        per_product[product_id] = per_product.get(product_id, 0) + quantity
        if color and size:
            available = await available_stock(db, product_id, color, size)
            if quantity > available:
                return {"productId": product_id, "color": color, "size": size,
                        "available": available, "requested": quantity}

    for product_id, quantity in per_product.items():
        available = await available_stock(db, product_id)
        if quantity > available:
            return {"productId": product_id, "color": None, "size": None,
                    "available": available, "requested": quantity}
    return None


async def reserve_items(db: AsyncSession, *, session_id: str, items: list[dict]) -> list[StockReservation]:
    """
    Reserve every line or none of them.

    items: [{product_id, quantity, color?, size?}]
    """
    requested: dict[tuple, int] = {}
    for item in items:
        key = await stock_bucket(db, int(item["product_id"]), item.get("color"), item.get("size"))
        requested[key] = requested.get(key, 0) + int(item["quantity"])

    shortfall = await find_shortfall(db, requested)
    if shortfall:
        product_id, available = shortfall["productId"], shortfall["available"]
        raise ValidationError(
            f"Insufficient stock for product {product_id}. Available: {available}",
            details={"productId": product_id, "available": available, "requested": shortfall["requested"]},
        )

    expires_at = datetime.utcnow() + timedelta(minutes=settings.stock_reservation_minutes)
    reservations = []
    for (product_id, color, size), quantity in requested.items():
        reservation = StockReservation(
            session_id=session_id,
            product_id=product_id,
            color=color,
            size=size,
            quantity=quantity,
            expires_at=expires_at,
        )
        db.add(reservation)
        reservations.append(reservation)
    await db.flush()

    logger.info(f"Reserved {len(reservations)} line(s) for {session_id} until {expires_at:%H:%M:%S}")
    return reservations


async def release_reservations(db: AsyncSession, *, session_id: str) -> int:
    result = await db.execute(delete(StockReservation).where(StockReservation.session_id == session_id))
    if result.rowcount:
        logger.info(f"Released {result.rowcount} reservation(s) for {session_id}")
    return result.rowcount or 0


async def cleanup_expired(db: AsyncSession, now: datetime | None = None) -> int:
    now = now or datetime.utcnow()
    result = await db.execute(delete(StockReservation).where(StockReservation.expires_at <= now))
    if result.rowcount:
        logger.info(f"Removed {result.rowcount} expired stock reservation(s)")
    return result.rowcount or 0
