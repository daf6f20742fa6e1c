"""
Order service — creation, lifecycle and payment notifications.

Lifecycle (linear, forward only, one step at a time):

    PENDING → PENDING_PAYMENT → PROCESSED → DELIVERED

PENDING_PAYMENT means the payment is confirmed and the order is waiting to
be prepared; stock is decremented on entering it. The MercadoPago status is
stored separately in `mp_status`.
"""
import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Order, OrderItem, Product, ProductVariant
from domain.constants import ORDER_STATUS_FLOW
from domain.enums import OrderStatus, PaymentMethod
from domain.errors import InvalidStatusTransitionError, NotFoundError, ValidationError
from services import coupon_service, stock_reservation_service
from services.catalog_service import effective_price

logger = logging.getLogger(__name__)

NEXT_STATUS = {
    current.value: nxt.value
    for current, nxt in zip(ORDER_STATUS_FLOW, ORDER_STATUS_FLOW[1:])
}

_CENT = Decimal("0.01")


def _money(value) -> float:
    return float(Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


def can_transition(current: str, target: str) -> bool:
    return NEXT_STATUS.get(current) == target


def map_payment_status(mp_status: str | None) -> str:
    """approved → PENDING_PAYMENT; anything else stays PENDING for review."""
    if mp_status == "approved":
        return OrderStatus.PENDING_PAYMENT.value
    return OrderStatus.PENDING.value


def serialize_order(order: Order, items: list[OrderItem] | None = None) -> dict:
    data = {
        "id": order.id,
        "status": order.status,
        "customer": {
            "name": order.customer_name,
            "email": order.customer_email,
            "phone": order.customer_phone,
        },
        "shipping": {
            "streetName": order.shipping_street_name,
            "streetNumber": order.shipping_street_number,
            "floor": order.shipping_floor,
            "apartment": order.shipping_apartment,
            "city": order.shipping_city,
            "provinceCode": order.shipping_province_code,
            "postalCode": order.shipping_postal_code,
            "agencyCode": order.shipping_agency_code,
            "methodId": order.shipping_method_id,
            "methodName": order.shipping_method_name,
        },
        "subtotal": order.subtotal,
        "discount": order.discount,
        "shippingCost": order.shipping_cost,
        "total": order.total,
        "couponCode": order.coupon_code,
        "paymentMethod": order.payment_method,
        "mpStatus": order.mp_status,
        "carrier": {
            "importStatus": order.carrier_import_status,
            "shipmentId": order.carrier_shipment_id,
            "trackingNumber": order.carrier_tracking_number,
            "error": order.carrier_import_error,
        },
        "createdAt": order.created_at.isoformat() if order.created_at else None,
        "deliveredAt": order.delivered_at.isoformat() if order.delivered_at else None,
    }
    if items is not None:
        data["items"] = [
            {
                "productId": i.product_id,
                "name": i.product_name,
                "quantity": i.quantity,
                "unitPrice": i.unit_price,
                "color": i.color,
                "size": i.size,
            }
            for i in items
        ]
    return data


# ── Queries ─────────────────────────────────────────────────────────

async def get_order(db: AsyncSession, *, order_id: str) -> Order:
    order = await db.get(Order, order_id)
    if not order:
        raise NotFoundError("Order", order_id)
    return order


async def get_order_items(db: AsyncSession, *, order_id: str) -> list[OrderItem]:
    res = await db.execute(
        select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)
    )
    return res.scalars().all()


async def list_orders(
    db: AsyncSession,
    *,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Order], int]:
    conditions = []
    if status:
        if status not in NEXT_STATUS and status != OrderStatus.DELIVERED.value:
            raise ValidationError(f"Unknown order status: {status}", field="status")
        conditions.append(Order.status == status)

    total = await db.scalar(select(func.count()).select_from(Order).where(*conditions))
    res = await db.execute(
        select(Order)
        .where(*conditions)
        .order_by(Order.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return res.scalars().all(), total or 0


# ── Creation ────────────────────────────────────────────────────────

async def create_order(
    db: AsyncSession,
    *,
    customer: dict,
    shipping: dict,
    lines: list[dict],
    subtotal: float,
    discount: float,
    shipping_cost: float,
    total: float,
    payment_method: str,
    coupon_code: str | None = None,
    order_id: str | None = None,
    status: str = OrderStatus.PENDING.value,
) -> Order:
    """
    Persist an order and its lines.

    lines: [{product_id, name, quantity, unit_price, color?, size?}]
    """
    order = Order(
        customer_name=customer["name"],
        customer_email=customer.get("email"),
        customer_phone=customer.get("phone"),
        shipping_street_name=shipping.get("street_name"),
        shipping_street_number=shipping.get("street_number"),
        shipping_floor=shipping.get("floor"),
        shipping_apartment=shipping.get("apartment"),
        shipping_city=shipping.get("city"),
        shipping_province_code=shipping.get("province_code"),
        shipping_postal_code=shipping.get("postal_code"),
        shipping_agency_code=shipping.get("agency_code"),
        shipping_method_id=shipping.get("method_id"),
        shipping_method_name=shipping.get("method_name"),
        subtotal=_money(subtotal),
        discount=_money(discount),
        shipping_cost=_money(shipping_cost),
        total=_money(total),
        coupon_code=coupon_code,
        status=status,
        payment_method=payment_method,
        created_at=datetime.utcnow(),
    )
    if order_id:
        order.id = order_id
    db.add(order)
    await db.flush()

    for line in lines:
        db.add(
            OrderItem(
                order_id=order.id,
                product_id=line["product_id"],
                product_name=line["name"],
                quantity=line["quantity"],
                unit_price=_money(line["unit_price"]),
                color=line.get("color"),
                size=line.get("size"),
            )
        )
    await db.flush()
    logger.info(f"Order {order.id} created ({payment_method}, total {order.total:.2f})")
    return order


# ── Lifecycle ───────────────────────────────────────────────────────

async def decrement_stock(db: AsyncSession, *, order: Order) -> None:
    """Take the order's units out of product (and variant) stock once."""
    if order.stock_decremented:
        return
    items = await get_order_items(db, order_id=order.id)
    for item in items:
        product = await db.get(Product, item.product_id)
        if product is None:
            logger.warning(f"Order {order.id}: product {item.product_id} no longer exists")
            continue
        if item.color and item.size:
            res = await db.execute(
                select(ProductVariant).where(
                    ProductVariant.product_id == item.product_id,
                    ProductVariant.color == item.color,
                    ProductVariant.size == item.size,
                )
            )
            variant = res.scalar_one_or_none()
            if variant is not None:
                variant.stock = max(0, variant.stock - item.quantity)
        if product.stock < item.quantity:
            logger.warning(
                f"Order {order.id}: stock for product {product.id} below ordered quantity "
                f"({product.stock} < {item.quantity})"
            )
        product.stock = max(0, product.stock - item.quantity)
    order.stock_decremented = True
    await db.flush()


async def advance_status(db: AsyncSession, *, order_id: str, target: str) -> Order:
    """Move an order exactly one step forward; anything else is rejected."""
    order = await get_order(db, order_id=order_id)
    if not can_transition(order.status, target):
        raise InvalidStatusTransitionError(order.status, target)

    now = datetime.utcnow()
    if target == OrderStatus.PENDING_PAYMENT.value:
        await decrement_stock(db, order=order)
        order.paid_at = order.paid_at or now
    elif target == OrderStatus.PROCESSED.value:
        order.processed_at = now
    elif target == OrderStatus.DELIVERED.value:
        order.delivered_at = now

    previous = order.status
    order.status = target
    order.updated_at = now
    await db.flush()
    logger.info(f"Order {order.id}: {previous} → {target}")
    return order


async def confirm_payment(db: AsyncSession, *, order_id: str) -> Order:
    """Manual confirmation for cash / transfer orders."""
    return await advance_status(db, order_id=order_id, target=OrderStatus.PENDING_PAYMENT.value)


async def mark_processed(db: AsyncSession, *, order_id: str) -> Order:
    return await advance_status(db, order_id=order_id, target=OrderStatus.PROCESSED.value)


async def mark_delivered(db: AsyncSession, *, order_id: str) -> Order:
    return await advance_status(db, order_id=order_id, target=OrderStatus.DELIVERED.value)


# ── Payment notifications ───────────────────────────────────────────

async def _lines_from_metadata(db: AsyncSession, meta_items: list) -> list[dict]:
    """Rebuild order lines from preference metadata using catalog prices."""
    if not isinstance(meta_items, list):
        raise ValidationError("Payment metadata items must be a list", field="metadata.items")

    lines = []
    for raw in meta_items:
        try:
            product_id = int(raw.get("product_id") or raw.get("productId"))
            quantity = max(1, int(raw.get("quantity") or 1))
        except (AttributeError, TypeError, ValueError):
            raise ValidationError(f"Unusable payment metadata item: {raw!r}", field="metadata.items")
        product = await db.get(Product, product_id)
        if product is None:
            raise ValidationError(f"Product not found: {product_id}")
        lines.append(
            {
                "product_id": product.id,
                "name": product.name,
                "quantity": quantity,
                "unit_price": effective_price(product),
                "color": raw.get("color"),
                "size": raw.get("size"),
            }
        )
    return lines


async def process_payment_notification(db: AsyncSession, *, payment: dict) -> tuple[Order | None, bool]:
    """
    Apply a MercadoPago payment to its order.

    Idempotent on the payment id. Existing orders only move forward; a new
    order is built from the preference metadata with prices re-read from
    the catalog. Returns (order, should_ship): should_ship is True only when
    this call moved the order into PENDING_PAYMENT.
    """
    mp_payment_id = str(payment.get("id"))
    mp_status = payment.get("status")
    target = map_payment_status(mp_status)
    metadata = payment.get("metadata") or {}
    external_reference = payment.get("external_reference") or metadata.get("temp_order_id")

    res = await db.execute(select(Order).where(Order.mp_payment_id == mp_payment_id))
    order = res.scalar_one_or_none()
    if order is None and external_reference:
        order = await db.get(Order, external_reference)

    if order is None:
        order = await _create_order_from_payment(
            db, payment=payment, metadata=metadata, order_id=external_reference
        )
        if order is None:
            return None, False

    order.mp_payment_id = mp_payment_id
    order.mp_status = mp_status
    if metadata.get("preference_id") and not order.mp_preference_id:
        order.mp_preference_id = metadata["preference_id"]

    should_ship = False
    if can_transition(order.status, target):
        await advance_status(db, order_id=order.id, target=target)
        should_ship = target == OrderStatus.PENDING_PAYMENT.value
    elif order.status != target:
        logger.info(f"Payment {mp_payment_id} ({mp_status}) leaves order {order.id} at {order.status}")

    if should_ship:
        await stock_reservation_service.release_reservations(db, session_id=order.id)
        if order.coupon_code:
            coupon = await coupon_service.get_coupon_by_code(db, code=order.coupon_code)
            if coupon:
                await coupon_service.redeem_coupon(db, coupon=coupon)
    await db.flush()
    return order, should_ship


async def _create_order_from_payment(
    db: AsyncSession,
    *,
    payment: dict,
    metadata: dict,
    order_id: str | None,
) -> Order | None:
    mp_payment_id = str(payment.get("id"))
    meta_items = metadata.get("items") or []
    if not meta_items:
        logger.warning(f"Payment {mp_payment_id} has no item metadata; nothing to create")
        return None

    lines = await _lines_from_metadata(db, meta_items)
    subtotal = sum(Decimal(str(l["unit_price"])) * l["quantity"] for l in lines)
    discount = min(Decimal(str(metadata.get("discount") or 0)), subtotal)
    shipping_cost = Decimal(str(metadata.get("shipping_cost") or 0))
    total = max(Decimal("0"), subtotal - discount + shipping_cost)

    paid = payment.get("transaction_amount")
    if paid is not None and abs(Decimal(str(paid)) - total) > _CENT:
        logger.warning(f"Payment {mp_payment_id}: paid {paid} but order totals {total:.2f}")

    payer = payment.get("payer") or {}
    payer_name = " ".join(p for p in (payer.get("first_name"), payer.get("last_name")) if p)
    order = await create_order(
        db,
        order_id=order_id,
        customer={
            "name": metadata.get("customer_name") or payer_name or "Cliente",
            "email": metadata.get("customer_email") or payer.get("email"),
            "phone": metadata.get("customer_phone") or (payer.get("phone") or {}).get("number"),
        },
        shipping={
            "street_name": metadata.get("street_name"),
            "street_number": metadata.get("street_number"),
            "floor": metadata.get("floor"),
            "apartment": metadata.get("apartment"),
            "city": metadata.get("city"),
            "province_code": metadata.get("province_code"),
            "postal_code": metadata.get("postal_code"),
            "agency_code": metadata.get("agency_code"),
            "method_id": metadata.get("shipping_method_id"),
            "method_name": metadata.get("shipping_method_name"),
        },
        lines=lines,
        subtotal=subtotal,
        discount=discount,
        shipping_cost=shipping_cost,
        total=total,
        payment_method=PaymentMethod.MERCADOPAGO.value,
        coupon_code=metadata.get("coupon_code"),
    )
    return order
