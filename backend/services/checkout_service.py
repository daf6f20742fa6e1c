"""
Checkout service — validates a cart, prices it and places the order.

Prices, discounts and shipping are always recomputed server-side; the cart
only contributes product ids, quantities and variant choices.

    cash / transfer → order created as PENDING (admin confirms payment later)
    mercadopago     → stock reserved under a temporary order id, preference
                      created, order materialized by the payment webhook
"""
import logging
import secrets
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Product, ProductVariant
from domain.constants import CARRIER_OPTION_PREFIX, PICKUP_OPTION_ID, TEMP_ORDER_PREFIX
from domain.enums import PaymentMethod
from domain.errors import ValidationError
from models import CheckoutRequest
from services import (
    coupon_service,
    mercadopago_service,
    order_service,
    shipment_service,
    shipping_rules,
    shipping_service,
    stock_reservation_service,
)
from services.catalog_service import effective_price

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")
DIRECT_PAYMENT_METHODS = (PaymentMethod.CASH.value, PaymentMethod.TRANSFER.value)


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)


def _variant_label(color: str | None, size: str | None) -> str:
    return f" ({color} / {size})" if color and size else ""


async def validate_stock(db: AsyncSession, items: list) -> dict[int, Product]:
    """
    Check every cart line against available stock.

    Returns the products by id. Lines naming a color and size are checked
    against that variant when the product has variants, and every line of a
    product counts against the product's total stock.
    """
    if not items:
        raise ValidationError("Cart is empty", field="items")

    products: dict[int, Product] = {}
    requested: dict[tuple, int] = {}
    for item in items:
        if item.quantity <= 0:
            raise ValidationError(
                f"Invalid quantity for product {item.product_id}: {item.quantity}",
                field="items",
            )
        product = products.get(item.product_id) or await db.get(Product, item.product_id)
        if product is None or not product.active:
            raise ValidationError(f"Product not found: {item.product_id}", field="items")
        products[product.id] = product

        key = await stock_reservation_service.stock_bucket(db, product.id, item.color, item.size)
        if item.color and item.size and key[1] is None:
            variant_count = await db.scalar(
                select(func.count()).select_from(ProductVariant).where(ProductVariant.product_id == product.id)
            )
            if variant_count:
                raise ValidationError(
                    f"Product {product.name} is not available in {item.color} / {item.size}",
                    field="items",
                )
        requested[key] = requested.get(key, 0) + item.quantity

    shortfall = await stock_reservation_service.find_shortfall(db, requested)
    if shortfall:
        product = products[shortfall["productId"]]
        available, quantity = shortfall["available"], shortfall["requested"]
        raise ValidationError(
            f"Insufficient stock for {product.name}{_variant_label(shortfall['color'], shortfall['size'])}. "
            f"Available: {available}, requested: {quantity}",
            field="items",
            details={"productId": product.id, "available": available, "requested": quantity},
        )
    return products


def price_cart(products: dict[int, Product], items: list) -> tuple[list[dict], Decimal]:
    """Order lines at catalog prices, and their subtotal."""
    lines = []
    subtotal = Decimal("0")
    for item in items:
        product = products[item.product_id]
        unit_price = _money(effective_price(product))
        lines.append(
            {
                "product_id": product.id,
                "name": product.name,
                "quantity": item.quantity,
                "unit_price": float(unit_price),
                "color": item.color,
                "size": item.size,
            }
        )
        subtotal += unit_price * item.quantity
    return lines, _money(subtotal)


def compute_totals(subtotal, discount, shipping_cost) -> dict:
    subtotal = _money(subtotal)
    discount = _money(discount)
    shipping_cost = _money(shipping_cost)
    total = max(Decimal("0"), subtotal - discount + shipping_cost)
    return {
        "subtotal": float(subtotal),
        "discount": float(discount),
        "shippingCost": float(shipping_cost),
        "total": float(_money(total)),
    }


async def _price_shipping(request: CheckoutRequest, postal_code: str | None, units: int) -> tuple[Decimal, str | None, str | None]:
    """(cost, method id, method name) for the selected shipping method."""
    method = request.shipping_method
    if method is None or method.id == PICKUP_OPTION_ID:
        return Decimal("0"), method.id if method else None, method.name if method else None

    if not postal_code:
        raise ValidationError("Postal code is required for shipping", field="customer.postalCode")

    if method.id.startswith(CARRIER_OPTION_PREFIX):
        option = await shipping_service.price_carrier_option(
            option_id=method.id, postal_code_destination=postal_code, units=units
        )
        return _money(option["price"]), option["id"], method.name or option["name"]

    for option in shipping_rules.calculate_shipping_options(postal_code):
        if option["id"] == method.id:
            return _money(option["price"]), option["id"], method.name or option["name"]
    raise ValidationError(f"Unknown shipping method: {method.id}", field="shippingMethod")


def _validate_customer(request: CheckoutRequest, province_code: str | None) -> None:
    customer = request.customer
    if "@" not in customer.email:
        raise ValidationError("Invalid customer email", field="customer.email")
    if customer.province and not province_code:
        raise ValidationError(f"Unknown province: {customer.province}", field="customer.province")

    method_id = request.shipping_method.id if request.shipping_method else None
    if method_id and method_id.startswith(CARRIER_OPTION_PREFIX):
        if method_id.startswith(f"{CARRIER_OPTION_PREFIX}S-"):
            if not request.shipping_agency_code:
                raise ValidationError(
                    "An agency is required for agency pickup", field="shippingAgencyCode"
                )
        else:
            missing = [
                name
                for name, value in (
                    ("streetName", customer.street_name),
                    ("streetNumber", customer.street_number),
                    ("city", customer.city),
                    ("province", province_code),
                    ("postalCode", customer.postal_code),
                )
                if not value
            ]
            if missing:
                raise ValidationError(
                    "Home delivery requires a complete address",
                    field="customer",
                    details={"missing": missing},
                )


async def checkout(db: AsyncSession, request: CheckoutRequest) -> dict:
    """Validate, price and place an order. Returns the order or the payment redirect."""
    payment_method = (request.payment_method or "").lower()
    if payment_method not in DIRECT_PAYMENT_METHODS and payment_method != PaymentMethod.MERCADOPAGO.value:
        raise ValidationError(f"Unsupported payment method: {request.payment_method}", field="paymentMethod")

    customer = request.customer
    province_code = shipping_rules.province_code_for(customer.province)
    postal_code = shipping_rules.normalize_postal_code(customer.postal_code) or customer.postal_code
    _validate_customer(request, province_code)

    products = await validate_stock(db, request.items)
    lines, subtotal = price_cart(products, request.items)
    units = sum(line["quantity"] for line in lines)

    coupon = None
    discount = Decimal("0")
    if request.coupon_code:
        coupon, discount_value = await coupon_service.apply_coupon(
            db, code=request.coupon_code, order_total=float(subtotal)
        )
        discount = _money(discount_value)

    shipping_cost, method_id, method_name = await _price_shipping(request, postal_code, units)
    totals = compute_totals(subtotal, discount, shipping_cost)

    shipping = {
        "street_name": customer.street_name,
        "street_number": customer.street_number,
        "floor": customer.floor,
        "apartment": customer.apartment,
        "city": customer.city,
        "province_code": province_code,
        "postal_code": postal_code,
        "agency_code": None if (method_id or "").startswith(f"{CARRIER_OPTION_PREFIX}D-") else request.shipping_agency_code,
        "method_id": method_id,
        "method_name": method_name,
    }
    customer_data = {"name": customer.name, "email": customer.email, "phone": customer.phone}

    if payment_method in DIRECT_PAYMENT_METHODS:
        order = await order_service.create_order(
            db,
            customer=customer_data,
            shipping=shipping,
            lines=lines,
            subtotal=totals["subtotal"],
            discount=totals["discount"],
            shipping_cost=totals["shippingCost"],
            total=totals["total"],
            payment_method=payment_method,
            coupon_code=coupon.code if coupon else None,
        )
        if coupon:
            await coupon_service.redeem_coupon(db, coupon=coupon)

        carrier_imported = None
        if method_id and method_id.startswith(CARRIER_OPTION_PREFIX):
            carrier_imported = await shipment_service.create_carrier_shipment(db, order_id=order.id)
            if not carrier_imported:
                logger.warning(f"Order {order.id} placed without carrier shipment; retry from admin")

        items = await order_service.get_order_items(db, order_id=order.id)
        return {
            "type": "order",
            "order": order_service.serialize_order(order, items),
            "carrierImported": carrier_imported,
        }

    # MercadoPago
    cart = [
        {"product_id": line["product_id"], "quantity": line["quantity"], "color": line["color"], "size": line["size"]}
        for line in lines
    ]
    temp_order_id = f"{TEMP_ORDER_PREFIX}{secrets.token_hex(8)}"
    await stock_reservation_service.cleanup_expired(db)
    await stock_reservation_service.reserve_items(db, session_id=temp_order_id, items=cart)

    metadata = {
        "temp_order_id": temp_order_id,
        "items": cart,
        "discount": totals["discount"],
        "shipping_cost": totals["shippingCost"],
        "customer_name": customer.name,
        "customer_email": customer.email,
        "customer_phone": customer.phone,
        "shipping_method_id": method_id,
        "shipping_method_name": method_name,
        "coupon_code": coupon.code if coupon else None,
        **{k: v for k, v in shipping.items() if k not in ("method_id", "method_name")},
    }
    preference = await mercadopago_service.create_preference(
        items=mercadopago_service.build_summary_items(
            totals["subtotal"], totals["shippingCost"], totals["discount"]
        ),
        external_reference=temp_order_id,
        payer={"name": customer.name, "email": customer.email},
        metadata=metadata,
    )
    logger.info(f"Checkout {temp_order_id}: MercadoPago preference {preference['id']} ({totals['total']:.2f})")
    return {
        "type": "redirect",
        "orderId": temp_order_id,
        "preferenceId": preference["id"],
        "initPoint": preference["init_point"],
        "sandboxInitPoint": preference["sandbox_init_point"],
        **totals,
    }
