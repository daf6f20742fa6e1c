"""
MercadoPago webhook.

Always answers 200 so MercadoPago does not retry notifications we chose to
ignore or could not process; every outcome is logged and reported in the
body.
"""

import logging

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from domain.constants import CARRIER_OPTION_PREFIX
from domain.errors import DomainError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/payments", tags=["payments"])


def _ack(**extra) -> dict:
    return {"received": True, **extra}


@router.post("/webhook")
async def mercadopago_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    x_signature: str | None = Header(None, alias="x-signature"),
    x_request_id: str | None = Header(None, alias="x-request-id"),
):
    from services import mercadopago_service, order_service, shipment_service

    try:
        body = await request.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    topic = body.get("type") or body.get("topic") or request.query_params.get("type")
    data_id = (body.get("data") or {}).get("id") or request.query_params.get("data.id")
    logger.info(f"MercadoPago notification: type={topic} action={body.get('action')} id={data_id}")

    if topic != "payment" or not data_id:
        logger.info("MercadoPago notification ignored (not a payment)")
        return _ack(ignored=True)

    if not mercadopago_service.verify_webhook_signature(x_signature, x_request_id, str(data_id)):
        logger.warning(f"MercadoPago notification {data_id} rejected: invalid signature")
        return _ack(processed=False, reason="invalid_signature")

    try:
        payment = await mercadopago_service.get_payment(str(data_id))
        order, should_ship = await order_service.process_payment_notification(db, payment=payment)
        if order is None:
            await db.commit()
            return _ack(processed=False, reason="no_order")

        shipped = None
        if should_ship and (order.shipping_method_id or "").startswith(CARRIER_OPTION_PREFIX):
            shipped = await shipment_service.create_carrier_shipment(db, order_id=order.id)
        await db.commit()
    except DomainError as e:
        await db.rollback()
        logger.error(f"MercadoPago notification {data_id} failed: {e.message}")
        return _ack(processed=False, reason=e.message)
    except Exception as e:
        await db.rollback()
        logger.error(f"MercadoPago notification {data_id} crashed: {e}", exc_info=True)
        return _ack(processed=False, reason="internal_error")

    logger.info(f"Payment {data_id} applied to order {order.id} ({order.status})")
    return _ack(processed=True, orderId=order.id, status=order.status, carrierImported=shipped)
