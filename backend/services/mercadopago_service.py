"""
MercadoPago service — checkout preferences, payment lookup, webhook signatures.

Flow:
    1. Checkout creates a preference with a single summary item and the
       order snapshot in `metadata`; the customer is redirected to init_point.
    2. MercadoPago calls POST /payments/webhook with the payment id.
    3. The webhook verifies x-signature, fetches the payment and hands it to
       order_service.process_payment_notification().

Signature verification FAILS CLOSED: without a configured secret every
notification is rejected.
"""
import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import httpx

from config import settings
from domain.errors import PaymentProviderError

logger = logging.getLogger(__name__)

PREFERENCE_TTL_MINUTES = 30


def _http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=settings.mercadopago_api_base, timeout=10.0)


def _headers(idempotency_key: Optional[str] = None) -> dict:
    if not settings.mercadopago_access_token:
        raise PaymentProviderError("MercadoPago is not configured (MERCADOPAGO_ACCESS_TOKEN)")
    headers = {"Authorization": f"Bearer {settings.mercadopago_access_token}"}
    if idempotency_key:
        headers["X-Idempotency-Key"] = idempotency_key
    return headers


def is_configured() -> bool:
    return bool(settings.mercadopago_access_token)


def build_summary_items(subtotal: float, shipping_cost: float, discount: float) -> list[dict]:
    """One line for the whole purchase: max(0, subtotal + shipping - discount)."""
    amount = Decimal(str(subtotal)) + Decimal(str(shipping_cost)) - Decimal(str(discount))
    amount = max(Decimal("0"), amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return [
        {
            "id": "purchase_summary",
            "title": f"Compra en {settings.store_name}",
            "quantity": 1,
            "unit_price": float(amount),
            "currency_id": settings.currency,
        }
    ]


def _notification_url() -> Optional[str]:
    url = settings.mercadopago_webhook_url
    if not url or "localhost" in url or "127.0.0.1" in url:
        return None
    return url


async def create_preference(
    *,
    items: list[dict],
    external_reference: str,
    payer: dict | None = None,
    metadata: dict | None = None,
) -> dict:
    """POST /checkout/preferences. Returns {id, init_point, sandbox_init_point}."""
    now = datetime.now(timezone.utc)
    body = {
        "items": items,
        "external_reference": external_reference,
        "metadata": metadata or {},
        "back_urls": {
            "success": f"{settings.app_url}/checkout/success",
            "failure": f"{settings.app_url}/checkout/failure",
            "pending": f"{settings.app_url}/checkout/pending",
        },
        "auto_return": "approved",
        "expires": True,
        "expiration_date_from": now.isoformat(),
        "expiration_date_to": (now + timedelta(minutes=PREFERENCE_TTL_MINUTES)).isoformat(),
        "statement_descriptor": settings.store_name[:22].upper(),
    }
    if payer:
        body["payer"] = payer
    notification_url = _notification_url()
    if notification_url:
        body["notification_url"] = notification_url

    headers = _headers(idempotency_key=f"pref_{external_reference}_{secrets.token_hex(4)}")
    try:
        async with _http_client() as client:
            response = await client.post("/checkout/preferences", json=body, headers=headers)
            response.raise_for_status()
            result = response.json()
    except httpx.HTTPStatusError as e:
        logger.error(
            f"MercadoPago preference failed: {e.response.status_code} {e.response.text[:200]}"
        )
        raise PaymentProviderError(
            "Could not create MercadoPago preference",
            details={"status": e.response.status_code},
        )
    except httpx.HTTPError as e:
        logger.error(f"MercadoPago preference failed: {e}")
        raise PaymentProviderError("Could not create MercadoPago preference")

    logger.info(f"MercadoPago preference {result.get('id')} created for {external_reference}")
    return {
        "id": result.get("id"),
        "init_point": result.get("init_point"),
        "sandbox_init_point": result.get("sandbox_init_point"),
    }


async def get_payment(payment_id: str) -> dict:
    """GET /v1/payments/{id}."""
    try:
        async with _http_client() as client:
            response = await client.get(f"/v1/payments/{payment_id}", headers=_headers())
            response.raise_for_status()
            return response.json()
    except httpx.HTTPStatusError as e:
        logger.error(f"MercadoPago payment {payment_id} lookup failed: {e.response.status_code}")
        raise PaymentProviderError(
            f"Could not fetch payment {payment_id}",
            details={"status": e.response.status_code},
        )
    except httpx.HTTPError as e:
        logger.error(f"MercadoPago payment {payment_id} lookup failed: {e}")
        raise PaymentProviderError(f"Could not fetch payment {payment_id}")


def parse_signature_header(x_signature: str) -> tuple[Optional[str], Optional[str]]:
    """'ts=1704908010,v1=abc...' → ('1704908010', 'abc...')"""
    ts = v1 = None
    for part in (x_signature or "").split(","):
        key, _, value = part.strip().partition("=")
        if key == "ts":
            ts = value
        elif key == "v1":
            v1 = value
    return ts, v1


def compute_signature(data_id: str, request_id: str, ts: str, secret: str) -> str:
    manifest = f"id:{data_id};request-id:{request_id};ts:{ts};"
    return hmac.new(secret.encode("utf-8"), manifest.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_webhook_signature(x_signature: Optional[str], x_request_id: Optional[str], data_id: str) -> bool:
    """
    Verify MercadoPago's x-signature header.

    Manifest: "id:<data.id>;request-id:<x-request-id>;ts:<ts>;" signed with
    HMAC-SHA256 using the webhook secret; compared against v1.
    """
    if not settings.mercadopago_webhook_secret:
        logger.error("MERCADOPAGO_WEBHOOK_SECRET not configured; rejecting webhook")
        return False
    if not x_signature or not x_request_id:
        return False

    ts, v1 = parse_signature_header(x_signature)
    if not ts or not v1:
        return False

    expected = compute_signature(str(data_id), x_request_id, ts, settings.mercadopago_webhook_secret)
    return hmac.compare_digest(expected, v1)
