"""
Coupon service — discount codes.

A coupon is usable when it is active, not expired, has uses left and the
order reaches its minimum value. Discounts are rounded to cents and never
exceed max_discount or the order total.
"""
import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Coupon
from domain.enums import CouponType
from domain.errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def serialize_coupon(coupon: Coupon) -> dict:
    return {
        "id": coupon.id,
        "code": coupon.code,
        "description": coupon.description,
        "discountType": coupon.discount_type,
        "value": coupon.value,
        "maxDiscount": coupon.max_discount,
        "minOrderValue": coupon.min_order_value,
        "maxUses": coupon.max_uses,
        "usedCount": coupon.used_count,
        "expiresAt": coupon.expires_at.isoformat() if coupon.expires_at else None,
        "active": coupon.active,
    }


async def create_coupon(
    db: AsyncSession,
    *,
    code: str,
    discount_type: str,
    value: float,
    description: str | None = None,
    max_discount: float | None = None,
    min_order_value: float | None = None,
    max_uses: int | None = None,
    expires_at: datetime | None = None,
    active: bool = True,
) -> Coupon:
    code = code.strip().upper()
    if discount_type not in (CouponType.PERCENTAGE.value, CouponType.FIXED.value):
        raise ValidationError(f"Unknown discount type: {discount_type}", field="discountType")
    if discount_type == CouponType.PERCENTAGE.value and value > 100:
        raise ValidationError("Percentage discounts cannot exceed 100", field="value")

    if await get_coupon_by_code(db, code=code):
        raise ConflictError(f"Coupon code already exists: {code}")

    coupon = Coupon(
        code=code,
        description=description,
        discount_type=discount_type,
        value=value,
        max_discount=max_discount,
        min_order_value=min_order_value,
        max_uses=max_uses,
        used_count=0,
        expires_at=expires_at,
        active=active,
    )
    db.add(coupon)
    await db.flush()
    return coupon


async def list_coupons(db: AsyncSession) -> list[Coupon]:
    res = await db.execute(select(Coupon).order_by(Coupon.created_at.desc(), Coupon.id.desc()))
    return res.scalars().all()


async def get_coupon_by_code(db: AsyncSession, *, code: str) -> Coupon | None:
    res = await db.execute(select(Coupon).where(Coupon.code == code.strip().upper()))
    return res.scalar_one_or_none()


def validate_coupon(coupon: Coupon, order_total: float, now: datetime | None = None) -> None:
    """Raise ValidationError when the coupon cannot be applied to this order."""
    now = now or datetime.utcnow()
    if not coupon.active:
        raise ValidationError("Coupon is not active", field="couponCode", details={"reason": "inactive"})
    if coupon.expires_at is not None and coupon.expires_at <= now:
        raise ValidationError("Coupon has expired", field="couponCode", details={"reason": "expired"})
    if coupon.max_uses is not None and coupon.used_count >= coupon.max_uses:
        raise ValidationError(
            "Coupon usage limit reached", field="couponCode", details={"reason": "exhausted"}
        )
    if coupon.min_order_value is not None and order_total < coupon.min_order_value:
        raise ValidationError(
            f"Minimum purchase of {coupon.min_order_value:.2f} required",
            field="couponCode",
            details={"reason": "below_minimum", "minOrderValue": coupon.min_order_value},
        )


def calculate_discount(coupon: Coupon, order_total: float) -> float:
    total = _money(order_total)
    if coupon.discount_type == CouponType.PERCENTAGE.value:
        discount = total * Decimal(str(coupon.value)) / Decimal("100")
    else:
        discount = Decimal(str(coupon.value))

    if coupon.max_discount is not None:
        discount = min(discount, Decimal(str(coupon.max_discount)))
    discount = max(Decimal("0"), min(discount, total))
    return float(_money(discount))


async def apply_coupon(db: AsyncSession, *, code: str, order_total: float) -> tuple[Coupon, float]:
    """Look up, validate and price a coupon for an order total."""
    coupon = await get_coupon_by_code(db, code=code)
    if not coupon:
        raise NotFoundError("Coupon", code.strip().upper())
    validate_coupon(coupon, order_total)
    return coupon, calculate_discount(coupon, order_total)


async def redeem_coupon(db: AsyncSession, *, coupon: Coupon) -> Coupon:
    coupon.used_count = (coupon.used_count or 0) + 1
    await db.flush()
    logger.info(f"Coupon {coupon.code} redeemed ({coupon.used_count}/{coupon.max_uses or '∞'})")
    return coupon
