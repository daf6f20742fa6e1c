"""
Shipment service — turns orders into Correo Argentino shipments.

An order with an agency code ships to that agency ("S"); otherwise it ships
to the customer's address ("D"). Import failures are stored on the order and
never change its status, so an admin can fix the data and retry.
"""
import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import Order, OrderItem
from domain.enums import CarrierImportStatus, DeliveryType
from domain.errors import CarrierError, ValidationError
from models import (
    ImportShipmentRequest,
    SenderAddress,
    ShipmentAddress,
    ShipmentDetails,
    ShipmentRecipient,
    ShipmentSender,
)
from services import notification_service, order_service, shipping_rules
from services.correo_argentino import get_carrier_client

logger = logging.getLogger(__name__)

DEFAULT_PRODUCT_TYPE = "CP"


def _product_type_for(order: Order) -> str:
    # "ca-D-CP" → "CP"
    method = order.shipping_method_id or ""
    parts = method.split("-")
    if len(parts) == 3 and parts[0] == "ca" and parts[2]:
        return parts[2]
    return DEFAULT_PRODUCT_TYPE


def build_sender() -> ShipmentSender:
    return ShipmentSender(
        name=settings.store_name,
        phone=settings.store_phone or None,
        email=settings.store_email or None,
        origin_address=SenderAddress(
            street_name=settings.store_street_name,
            street_number=settings.store_street_number,
            city=settings.store_city,
            province_code=settings.store_province_code,
            postal_code=settings.store_postal_code,
        ),
    )


def build_import_request(order: Order, items: list[OrderItem]) -> ImportShipmentRequest:
    """Import payload for an order: store as sender, customer as recipient."""
    units = sum(i.quantity for i in items)
    package = shipping_rules.estimate_package(units)

    if order.shipping_agency_code:
        delivery_type = DeliveryType.AGENCY.value
        address = None
    else:
        delivery_type = DeliveryType.HOME.value
        address = ShipmentAddress(
            street_name=order.shipping_street_name,
            street_number=order.shipping_street_number,
            floor=order.shipping_floor,
            apartment=order.shipping_apartment,
            city=order.shipping_city,
            province_code=order.shipping_province_code,
            postal_code=shipping_rules.normalize_postal_code(order.shipping_postal_code)
            or order.shipping_postal_code,
        )

    return ImportShipmentRequest(
        customer_id=settings.correo_argentino_customer_id,
        ext_order_id=order.id,
        order_number=order.id,
        sender=build_sender(),
        recipient=ShipmentRecipient(
            name=order.customer_name,
            phone=order.customer_phone,
            email=order.customer_email or "",
        ),
        shipping=ShipmentDetails(
            delivery_type=delivery_type,
            product_type=_product_type_for(order),
            agency=order.shipping_agency_code,
            address=address,
            weight=package.weight,
            declared_value=order.total,
            height=package.height,
            length=package.length,
            width=package.width,
        ),
    )


async def create_carrier_shipment(db: AsyncSession, *, order_id: str) -> bool:
    """
    Import the order into MiCorreo.

    Returns True on success (tracking / shipment id stored on the order).
    On failure the error is logged and stored, and False is returned.
    """
    order = await order_service.get_order(db, order_id=order_id)
    if order.carrier_import_status == CarrierImportStatus.IMPORTED.value:
        logger.info(f"Order {order.id} already imported to Correo Argentino")
        return True

    items = await order_service.get_order_items(db, order_id=order.id)
    try:
        request = build_import_request(order, items)
        result = await get_carrier_client().import_shipment(request)
    except (CarrierError, ValidationError) as e:
        order.carrier_import_status = CarrierImportStatus.FAILED.value
        order.carrier_import_error = e.message if not e.details else f"{e.message}: {e.details}"
        await db.flush()
        logger.error(f"Carrier import for order {order.id} failed: {e.message}")
        return False

    order.carrier_import_status = CarrierImportStatus.IMPORTED.value
    order.carrier_import_error = None
    order.carrier_imported_at = datetime.utcnow()
    order.carrier_shipment_id = result.shipment_id or result.id
    order.carrier_tracking_number = result.tracking_number or result.reference
    await db.flush()
    logger.info(f"Order {order.id} imported to Correo Argentino (ref {result.reference})")
    await notification_service.send_order_shipped_email(order)
    return True


async def sync_tracking(db: AsyncSession, *, order_id: str) -> dict:
    """
    Refresh tracking for an imported order.

    A tracking number reported by the carrier replaces the stored one.
    """
    order = await order_service.get_order(db, order_id=order_id)
    reference = order.carrier_tracking_number or order.carrier_shipment_id or order.id
    if order.carrier_import_status != CarrierImportStatus.IMPORTED.value:
        raise ValidationError(f"Order {order.id} has not been imported to Correo Argentino")

    tracking = await get_carrier_client().get_tracking(reference)
    updated = False
    if tracking:
        latest = tracking[0]
        if latest.shipping_id and latest.shipping_id != order.carrier_tracking_number:
            order.carrier_tracking_number = latest.shipping_id
            updated = True
            await db.flush()
            logger.info(f"Order {order.id}: tracking number updated to {latest.shipping_id}")

    return {
        "orderId": order.id,
        "trackingNumber": order.carrier_tracking_number,
        "updated": updated,
        "tracking": [t.model_dump(by_alias=True) for t in tracking],
    }
