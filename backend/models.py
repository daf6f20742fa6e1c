"""
Pydantic models for request/response validation.

Carrier models mirror the Correo Argentino MiCorreo JSON (camelCase on the
wire, snake_case in Python). Storefront request models use explicit aliases
for the camelCase fields the frontend sends.
"""
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Literal, Optional


class CarrierModel(BaseModel):
    """Base for MiCorreo payloads — construct by Python name or camelCase alias.

    Ids and codes the API sometimes sends as numbers are kept as strings.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True)

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class StoreBase(BaseModel):
    """Shared base for storefront request models."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


# ── Carrier: auth / customers ───────────────────────────────────────

class TokenResponse(CarrierModel):
    token: Optional[str] = None
    expires: Optional[str] = None


class CarrierAddress(CarrierModel):
    street_name: str
    street_number: str
    floor: Optional[str] = None
    apartment: Optional[str] = None
    locality: Optional[str] = None
    city: str
    province_code: str
    postal_code: str


class RegisterUserRequest(CarrierModel):
    first_name: str
    last_name: Optional[str] = None  # required for DNI
    email: str
    password: str
    document_type: Literal["DNI", "CUIT"]
    document_id: str
    phone: Optional[str] = None
    cell_phone: Optional[str] = None
    address: Optional[CarrierAddress] = None  # required for DNI


class CarrierCustomer(CarrierModel):
    customer_id: str
    created_at: Optional[str] = None


# ── Carrier: rates ──────────────────────────────────────────────────

class PackageDimensions(CarrierModel):
    """Weight in grams, sides in centimetres."""
    weight: float
    height: float
    width: float
    length: float


class RateRequest(CarrierModel):
    customer_id: str = ""
    postal_code_origin: str
    postal_code_destination: str
    delivered_type: Optional[Literal["D", "S"]] = None
    dimensions: PackageDimensions


class RateQuote(CarrierModel):
    delivered_type: str
    product_type: str
    product_name: str
    price: float
    delivery_time_min: Optional[str] = None
    delivery_time_max: Optional[str] = None


class RatesResponse(CarrierModel):
    customer_id: Optional[str] = None
    valid_to: Optional[str] = None
    rates: List[RateQuote] = Field(default_factory=list)


# ── Carrier: agencies ───────────────────────────────────────────────

class AgencyAddress(CarrierModel):
    street_name: Optional[str] = None
    street_number: Optional[str] = None
    locality: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    province_code: Optional[str] = None
    postal_code: Optional[str] = None


class AgencyLocation(CarrierModel):
    address: AgencyAddress = Field(default_factory=AgencyAddress)
    latitude: Optional[str] = None
    longitude: Optional[str] = None


class AgencyServices(CarrierModel):
    package_reception: bool = False
    pickup_availability: bool = False


class Agency(CarrierModel):
    code: str
    name: str
    manager: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    services: AgencyServices = Field(default_factory=AgencyServices)
    location: AgencyLocation = Field(default_factory=AgencyLocation)
    hours: Optional[dict] = None
    status: str = "ACTIVE"


# ── Carrier: shipment import ────────────────────────────────────────

class SenderAddress(CarrierModel):
    street_name: Optional[str] = None
    street_number: Optional[str] = None
    floor: Optional[str] = None
    apartment: Optional[str] = None
    city: Optional[str] = None
    province_code: Optional[str] = None
    postal_code: Optional[str] = None


class ShipmentSender(CarrierModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    cell_phone: Optional[str] = None
    email: Optional[str] = None
    origin_address: Optional[SenderAddress] = None


class ShipmentRecipient(CarrierModel):
    name: str
    phone: Optional[str] = None
    cell_phone: Optional[str] = None
    email: str = ""


class ShipmentAddress(CarrierModel):
    street_name: Optional[str] = None
    street_number: Optional[str] = None
    floor: Optional[str] = None
    apartment: Optional[str] = None
    city: Optional[str] = None
    province_code: Optional[str] = None
    postal_code: Optional[str] = None


class ShipmentDetails(CarrierModel):
    delivery_type: Literal["D", "S"]
    product_type: str = "CP"
    agency: Optional[str] = None         # required when delivery_type == "S"
    origin_agency: Optional[str] = None  # never sent to the API
    address: Optional[ShipmentAddress] = None  # required when delivery_type == "D"
    weight: float
    declared_value: float
    height: float
    length: float
    width: float


class ImportShipmentRequest(CarrierModel):
    customer_id: str = ""
    ext_order_id: str
    order_number: Optional[str] = None
    sender: Optional[ShipmentSender] = None
    recipient: ShipmentRecipient
    shipping: ShipmentDetails


class ImportShipmentResponse(CarrierModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True, extra="allow"
    )

    customer_id: Optional[str] = None
    created_at: Optional[str] = None
    tracking_number: Optional[str] = None
    shipment_id: Optional[str] = None
    id: Optional[str] = None

    @property
    def reference(self) -> Optional[str]:
        """Best identifier the API returned for the new shipment."""
        return self.tracking_number or self.shipment_id or self.id


# ── Carrier: tracking ───────────────────────────────────────────────

class TrackingEvent(CarrierModel):
    event_date: Optional[str] = None
    event_description: Optional[str] = None
    branch_name: Optional[str] = None
    branch_code: Optional[str] = None
    status: Optional[str] = None


class TrackingInfo(CarrierModel):
    shipping_id: Optional[str] = None
    status: Optional[str] = None
    events: List[TrackingEvent] = Field(default_factory=list)


# ── Storefront: catalog ─────────────────────────────────────────────

class CategoryCreateRequest(StoreBase):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=2000)


class ProductCreateRequest(StoreBase):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    category_id: Optional[int] = Field(default=None, alias="categoryId")
    price: float = Field(..., gt=0)
    sale_price: Optional[float] = Field(default=None, alias="salePrice", gt=0)
    on_sale: bool = Field(False, alias="onSale")
    stock: int = Field(0, ge=0)
    active: bool = True


class ProductUpdateRequest(StoreBase):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    category_id: Optional[int] = Field(default=None, alias="categoryId")
    price: Optional[float] = Field(default=None, gt=0)
    sale_price: Optional[float] = Field(default=None, alias="salePrice", gt=0)
    on_sale: Optional[bool] = Field(default=None, alias="onSale")
    stock: Optional[int] = Field(default=None, ge=0)
    active: Optional[bool] = None


class VariantIn(StoreBase):
    color: str = Field(..., min_length=1, max_length=50)
    size: str = Field(..., min_length=1, max_length=20)
    stock: int = Field(0, ge=0)
    sku: Optional[str] = Field(default=None, max_length=64)


class VariantsUpdateRequest(StoreBase):
    variants: List[VariantIn]


# ── Storefront: coupons ─────────────────────────────────────────────

class CouponCreateRequest(StoreBase):
    code: str = Field(..., min_length=3, max_length=50)
    description: Optional[str] = None
    discount_type: Literal["PERCENTAGE", "FIXED"] = Field("PERCENTAGE", alias="discountType")
    value: float = Field(..., gt=0)
    max_discount: Optional[float] = Field(default=None, alias="maxDiscount", gt=0)
    min_order_value: Optional[float] = Field(default=None, alias="minOrderValue", ge=0)
    max_uses: Optional[int] = Field(default=None, alias="maxUses", ge=1)
    expires_at: Optional[str] = Field(default=None, alias="expiresAt", description="ISO 8601 datetime")
    active: bool = True


class CouponValidateRequest(StoreBase):
    code: str = Field(..., min_length=1, max_length=50)
    order_total: float = Field(..., alias="orderTotal", ge=0)


# ── Storefront: shipping ────────────────────────────────────────────

class ShippingRatesRequest(StoreBase):
    postal_code: str = Field(..., alias="postalCode")
    delivered_type: Optional[Literal["D", "S"]] = Field(default=None, alias="deliveredType")
    units: Optional[int] = Field(default=None, ge=1)
    dimensions: Optional[PackageDimensions] = None


class AgencySyncRequest(StoreBase):
    province_codes: Optional[List[str]] = Field(default=None, alias="provinceCodes")


class CarrierUserValidateRequest(StoreBase):
    email: str = Field(..., min_length=3, max_length=200)
    password: str = Field(..., min_length=1)


# ── Storefront: checkout ────────────────────────────────────────────

class CartItemIn(StoreBase):
    product_id: int = Field(..., alias="productId")
    quantity: int
    color: Optional[str] = None
    size: Optional[str] = None


class CustomerInfo(StoreBase):
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., min_length=3, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=50)
    street_name: Optional[str] = Field(default=None, alias="streetName")
    street_number: Optional[str] = Field(default=None, alias="streetNumber")
    floor: Optional[str] = None
    apartment: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None  # code ("B") or name ("Buenos Aires")
    postal_code: Optional[str] = Field(default=None, alias="postalCode")


class ShippingMethodIn(StoreBase):
    id: str
    name: Optional[str] = None


class CheckoutRequest(StoreBase):
    items: List[CartItemIn]
    customer: CustomerInfo
    payment_method: str = Field(..., alias="paymentMethod")
    shipping_method: Optional[ShippingMethodIn] = Field(default=None, alias="shippingMethod")
    shipping_agency_code: Optional[str] = Field(default=None, alias="shippingAgencyCode")
    coupon_code: Optional[str] = Field(default=None, alias="couponCode")


# ── Storefront: admin ───────────────────────────────────────────────

class AdminLoginRequest(StoreBase):
    email: str
    password: str


class AdminTokenResponse(StoreBase):
    access_token: str = Field(..., alias="accessToken")
    token_type: str = Field("Bearer", alias="tokenType")
    expires_in_seconds: int = Field(..., alias="expiresInSeconds")
