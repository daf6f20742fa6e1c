"""
Coupon endpoints — public validation, admin creation and listing.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import require_admin
from domain.errors import ValidationError
from domain.responses import success_response
from models import CouponCreateRequest, CouponValidateRequest

logger = logging.getLogger(__name__)
router = APIRouter(tags=["coupons"])
admin_router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _parse_expiry(value: str | None) -> datetime | None:
    """ISO 8601 → naive UTC (the column stores utcnow-style datetimes)."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"Invalid datetime: {value!r}", field="expiresAt")
    if parsed.tzinfo:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


@router.post("/coupons/validate")
async def validate_coupon(request: CouponValidateRequest, db: AsyncSession = Depends(get_db)):
    """Check a code against an order total and return the discount it would give."""
    from services import coupon_service

    coupon, discount = await coupon_service.apply_coupon(
        db, code=request.code, order_total=request.order_total
    )
    return success_response(
        data={
            "valid": True,
            "code": coupon.code,
            "discountType": coupon.discount_type,
            "value": coupon.value,
            "discount": discount,
            "totalAfterDiscount": round(max(0.0, request.order_total - discount), 2),
        }
    )


@admin_router.post("/coupons")
async def create_coupon(request: CouponCreateRequest, db: AsyncSession = Depends(get_db)):
    from services import coupon_service

    coupon = await coupon_service.create_coupon(
        db,
        code=request.code,
        description=request.description,
        discount_type=request.discount_type,
        value=request.value,
        max_discount=request.max_discount,
        min_order_value=request.min_order_value,
        max_uses=request.max_uses,
        expires_at=_parse_expiry(request.expires_at),
        active=request.active,
    )
    await db.commit()
    await db.refresh(coupon)
    logger.info(f"Coupon {coupon.code} created")
    return success_response(data=coupon_service.serialize_coupon(coupon))


@admin_router.get("/coupons")
async def list_coupons(db: AsyncSession = Depends(get_db)):
    from services import coupon_service

    coupons = await coupon_service.list_coupons(db)
    return success_response(
        data=[coupon_service.serialize_coupon(c) for c in coupons],
        meta={"total": len(coupons)},
    )
