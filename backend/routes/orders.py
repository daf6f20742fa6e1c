"""
Order endpoints — public order status plus the admin order and shipment back office.

Admin lifecycle actions move an order exactly one step:
    confirm-payment  PENDING → PENDING_PAYMENT
    mark-processed   PENDING_PAYMENT → PROCESSED
    mark-delivered   PROCESSED → DELIVERED
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import Pagination, pagination_params, require_admin
from domain.responses import paginated_response, success_response
from models import AgencySyncRequest
from utils.validators import validate_province_code, validated_order_id

logger = logging.getLogger(__name__)
router = APIRouter(tags=["orders"])
admin_router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


async def _order_payload(db: AsyncSession, order) -> dict:
    from services import order_service

    items = await order_service.get_order_items(db, order_id=order.id)
    return order_service.serialize_order(order, items)


# ── Public ──────────────────────────────────────────────────────────

@router.get("/orders/{order_id}")
async def get_order_status(order_id: str = Depends(validated_order_id), db: AsyncSession = Depends(get_db)):
    """Status view for the customer's confirmation page (no personal data)."""
    from services import order_service

    order = await order_service.get_order(db, order_id=order_id)
    return success_response(
        data={
            "id": order.id,
            "status": order.status,
            "total": order.total,
            "paymentMethod": order.payment_method,
            "shippingMethod": order.shipping_method_name,
            "trackingNumber": order.carrier_tracking_number,
            "createdAt": order.created_at.isoformat() if order.created_at else None,
        }
    )


# ── Admin: orders ───────────────────────────────────────────────────

@admin_router.get("/orders")
async def list_orders(
    status: Optional[str] = Query(None),
    page: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
):
    from services import order_service

    orders, total = await order_service.list_orders(
        db, status=status, limit=page["limit"], offset=page["offset"]
    )
    return paginated_response(
        [order_service.serialize_order(o) for o in orders],
        limit=page["limit"],
        offset=page["offset"],
        total=total,
    )


@admin_router.get("/orders/{order_id}")
async def get_order(order_id: str = Depends(validated_order_id), db: AsyncSession = Depends(get_db)):
    from services import order_service

    order = await order_service.get_order(db, order_id=order_id)
    return success_response(data=await _order_payload(db, order))


@admin_router.patch("/orders/{order_id}/confirm-payment")
async def confirm_payment(order_id: str = Depends(validated_order_id), db: AsyncSession = Depends(get_db)):
    from services import order_service

    order = await order_service.confirm_payment(db, order_id=order_id)
    await db.commit()
    return success_response(data=await _order_payload(db, order))


@admin_router.patch("/orders/{order_id}/mark-processed")
async def mark_processed(order_id: str = Depends(validated_order_id), db: AsyncSession = Depends(get_db)):
    from services import order_service

    order = await order_service.mark_processed(db, order_id=order_id)
    await db.commit()
    return success_response(data=await _order_payload(db, order))


@admin_router.patch("/orders/{order_id}/mark-delivered")
async def mark_delivered(order_id: str = Depends(validated_order_id), db: AsyncSession = Depends(get_db)):
    from services import order_service

    order = await order_service.mark_delivered(db, order_id=order_id)
    await db.commit()
    return success_response(data=await _order_payload(db, order))


# ── Admin: carrier ──────────────────────────────────────────────────

@admin_router.post("/orders/{order_id}/retry-carrier-import")
async def retry_carrier_import(order_id: str = Depends(validated_order_id), db: AsyncSession = Depends(get_db)):
    """Re-run the Correo Argentino import after a failure (e.g. fixed address)."""
    from services import order_service, shipment_service

    imported = await shipment_service.create_carrier_shipment(db, order_id=order_id)
    await db.commit()
    order = await order_service.get_order(db, order_id=order_id)
    return success_response(data={"imported": imported, "order": await _order_payload(db, order)})


@admin_router.post("/orders/{order_id}/sync-carrier")
async def sync_carrier(order_id: str = Depends(validated_order_id), db: AsyncSession = Depends(get_db)):
    from services import shipment_service

    result = await shipment_service.sync_tracking(db, order_id=order_id)
    await db.commit()
    return success_response(data=result)


@admin_router.post("/agencies/sync")
async def sync_agencies(request: AgencySyncRequest, db: AsyncSession = Depends(get_db)):
    from services import shipping_service

    result = await shipping_service.sync_agencies(db, province_codes=request.province_codes)
    await db.commit()
    return success_response(data=result)


@admin_router.get("/agencies")
async def list_agencies(
    province_code: Optional[str] = Query(None, alias="provinceCode"),
    db: AsyncSession = Depends(get_db),
):
    from services import shipping_service

    code = validate_province_code(province_code) if province_code else None
    rows = await shipping_service.list_cached_agencies(db, province_code=code)
    return success_response(
        data=[shipping_service.serialize_cached_agency(r) for r in rows],
        meta={"total": len(rows)},
    )
