"""
Domain enums shared by services and routes.
"""

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PROCESSED = "PROCESSED"
    DELIVERED = "DELIVERED"


class PaymentMethod(str, Enum):
    MERCADOPAGO = "mercadopago"
    CASH = "cash"
    TRANSFER = "transfer"


class DeliveryType(str, Enum):
    HOME = "D"     # domicilio
    AGENCY = "S"   # sucursal


class CouponType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class CarrierImportStatus(str, Enum):
    NOT_REQUESTED = "NOT_REQUESTED"
    IMPORTED = "IMPORTED"
    FAILED = "FAILED"
