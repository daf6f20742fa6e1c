"""
SQLAlchemy ORM models for the storefront backend.

Tables:
    categories          — product categories
    products            — catalog items (list price, optional sale price, stock)
    product_variants    — per color/size stock for products that have variants
    coupons             — discount codes
    orders              — customer orders, payment and carrier shipment state
    order_items         — order lines with the unit price charged
    stock_reservations  — short-lived holds while a payment is pending
    carrier_agencies    — Correo Argentino branches synced for pickup lookup
"""
import secrets
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, Text, ForeignKey,
    UniqueConstraint, Index,
)

from database import Base


def new_order_id() -> str:
    return f"ord_{secrets.token_hex(8)}"


# ════════════════════════════════════════════════════════════════════
# Catalog
# ════════════════════════════════════════════════════════════════════

class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)
    price = Column(Float, nullable=False, default=0.0)
    sale_price = Column(Float, nullable=True)
    on_sale = Column(Boolean, nullable=False, default=False)
    stock = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ProductVariant(Base):
    """Stock for one color/size combination of a product."""
    __tablename__ = "product_variants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    color = Column(String(50), nullable=False)
    size = Column(String(20), nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    sku = Column(String(64), nullable=True)

    __table_args__ = (
        UniqueConstraint("product_id", "color", "size", name="uq_variant_product_color_size"),
    )


# ════════════════════════════════════════════════════════════════════
# Coupons
# ════════════════════════════════════════════════════════════════════

class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(50), unique=True, nullable=False, index=True)  # stored upper-case
    description = Column(Text, nullable=True)
    discount_type = Column(String(20), nullable=False, default="PERCENTAGE")  # PERCENTAGE | FIXED
    value = Column(Float, nullable=False, default=0.0)  # percent or ARS
    max_discount = Column(Float, nullable=True)
    min_order_value = Column(Float, nullable=True)
    max_uses = Column(Integer, nullable=True)  # null => unlimited
    used_count = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)


# ════════════════════════════════════════════════════════════════════
# Orders
# ════════════════════════════════════════════════════════════════════

class Order(Base):
    __tablename__ = "orders"

    id = Column(String(40), primary_key=True, default=new_order_id)

    # Customer
    customer_name = Column(String(200), nullable=False)
    customer_email = Column(String(200), nullable=True)
    customer_phone = Column(String(50), nullable=True)

    # Shipping destination (home delivery) or agency (pickup)
    shipping_street_name = Column(String(200), nullable=True)
    shipping_street_number = Column(String(20), nullable=True)
    shipping_floor = Column(String(10), nullable=True)
    shipping_apartment = Column(String(10), nullable=True)
    shipping_city = Column(String(100), nullable=True)
    shipping_province_code = Column(String(1), nullable=True)
    shipping_postal_code = Column(String(10), nullable=True)
    shipping_agency_code = Column(String(20), nullable=True)
    shipping_method_id = Column(String(50), nullable=True)  # "pickup" | "standard" | "ca-D-CP" ...
    shipping_method_name = Column(String(200), nullable=True)

    # Amounts (ARS)
    subtotal = Column(Float, nullable=False, default=0.0)
    discount = Column(Float, nullable=False, default=0.0)
    shipping_cost = Column(Float, nullable=False, default=0.0)
    total = Column(Float, nullable=False, default=0.0)
    coupon_code = Column(String(50), nullable=True)

    # Lifecycle: PENDING → PENDING_PAYMENT → PROCESSED → DELIVERED
    status = Column(String(30), nullable=False, default="PENDING", index=True)
    payment_method = Column(String(20), nullable=False, default="cash")  # mercadopago | cash | transfer
    stock_decremented = Column(Boolean, nullable=False, default=False)

    # MercadoPago (provider status kept apart from order status)
    mp_payment_id = Column(String(64), unique=True, nullable=True, index=True)
    mp_preference_id = Column(String(128), nullable=True)
    mp_status = Column(String(30), nullable=True)

    # Correo Argentino shipment
    carrier_import_status = Column(String(20), nullable=False, default="NOT_REQUESTED")
    carrier_shipment_id = Column(String(64), nullable=True)
    carrier_tracking_number = Column(String(64), nullable=True, index=True)
    carrier_import_error = Column(Text, nullable=True)
    carrier_imported_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    paid_at = Column(DateTime, nullable=True)
    processed_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_orders_status_created", "status", "created_at"),
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(40), ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    product_name = Column(String(200), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Float, nullable=False, default=0.0)
    color = Column(String(50), nullable=True)
    size = Column(String(20), nullable=True)


# ════════════════════════════════════════════════════════════════════
# Stock reservations
# ════════════════════════════════════════════════════════════════════

class StockReservation(Base):
    """
    Units held for a checkout whose payment has not been confirmed.

    `session_id` is the temporary order reference sent to the payment
    provider. Available stock = stock - unexpired reservations.
    """
    __tablename__ = "stock_reservations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(64), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    color = Column(String(50), nullable=True)
    size = Column(String(20), nullable=True)
    quantity = Column(Integer, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)


# ════════════════════════════════════════════════════════════════════
# Correo Argentino agencies
# ════════════════════════════════════════════════════════════════════

class CarrierAgency(Base):
    __tablename__ = "carrier_agencies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(20), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    province_code = Column(String(1), nullable=False, index=True)
    city = Column(String(100), nullable=True)
    street_name = Column(String(200), nullable=True)
    street_number = Column(String(20), nullable=True)
    postal_code = Column(String(10), nullable=True, index=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    phone = Column(String(50), nullable=True)
    services = Column(Text, nullable=True)  # JSON object from the carrier
    active = Column(Boolean, nullable=False, default=True)
    synced_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
