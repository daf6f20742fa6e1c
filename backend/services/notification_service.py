"""
Customer notifications sent through the Resend HTTP API.

Without RESEND_API_KEY the message is logged and skipped. Delivery failures
are logged and never propagate to the caller.
"""
import logging

import httpx

from config import settings
from db_models import Order

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"


def _shipped_email_html(order: Order) -> str:
    tracking = order.carrier_tracking_number or "-"
    return (
        f"<p>Hola {order.customer_name},</p>"
        f"<p>Tu pedido <strong>{order.id}</strong> fue despachado con Correo Argentino.</p>"
        f"<p>Número de seguimiento: <strong>{tracking}</strong></p>"
        f"<p>Gracias por comprar en {settings.store_name}.</p>"
    )


async def send_email(*, to: str, subject: str, html: str) -> bool:
    if not settings.resend_api_key:
        logger.info(f"Email skipped (RESEND_API_KEY not set): {subject!r} → {to}")
        return False
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(
                RESEND_URL,
                headers={"Authorization": f"Bearer {settings.resend_api_key}"},
                json={"from": settings.email_from, "to": [to], "subject": subject, "html": html},
            )
            response.raise_for_status()
        logger.info(f"Email sent: {subject!r} → {to}")
        return True
    except httpx.HTTPError as e:
        logger.error(f"Email to {to} failed: {e}")
        return False


async def send_order_shipped_email(order: Order) -> bool:
    if not order.customer_email:
        return False
    return await send_email(
        to=order.customer_email,
        subject=f"Tu pedido {order.id} está en camino",
        html=_shipped_email_html(order),
    )
