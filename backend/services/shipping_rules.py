"""
Shipping rules — request validation, unit normalization and the zone table.

Pure functions, no I/O. The carrier client validates every rate and import
request here before anything is sent to MiCorreo; the zone table prices
shipping when carrier quotes are not used.
"""
import re
import unicodedata
from decimal import Decimal, ROUND_HALF_UP

from domain.constants import (
    DEFAULT_PACKAGE_DIMENSIONS,
    GRAMS_PER_UNIT,
    MAX_APARTMENT_LENGTH,
    MAX_DIMENSION_CM,
    MAX_FLOOR_LENGTH,
    MAX_WEIGHT_GRAMS,
    MIN_PACKAGE_WEIGHT_GRAMS,
    MIN_WEIGHT_GRAMS,
    PROVINCE_ALIASES,
    PROVINCES,
)
from domain.errors import ValidationError
from models import ImportShipmentRequest, PackageDimensions, RateRequest

# 1611, B1611 or full CPA B1611ABC
_POSTAL_CODE_RE = re.compile(r"^[A-Za-z]?(\d{4})(?:[A-Za-z]{3})?$")
# Storefront form: 4 digits, optionally prefixed by the province letter
_ZONE_POSTAL_CODE_RE = re.compile(r"^[A-Za-z]?\d{4}$")


# ── Postal codes / provinces ────────────────────────────────────────

def normalize_postal_code(code: str | None) -> str | None:
    """Return the 4-digit postal code, or None if `code` is not recognizable."""
    if not code:
        return None
    match = _POSTAL_CODE_RE.match(code.strip().replace(" ", ""))
    return match.group(1) if match else None


def _fold(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(stripped.lower().split())


_PROVINCE_BY_NAME = {_fold(name): code for code, name in PROVINCES.items()}


def province_code_for(value: str | None) -> str | None:
    """
    Resolve a province code from a code ("X") or a name ("Córdoba", "cordoba").

    Returns None when nothing matches.
    """
    if not value:
        return None
    value = value.strip()
    if len(value) == 1 and value.upper() in PROVINCES:
        return value.upper()
    folded = _fold(value)
    return _PROVINCE_BY_NAME.get(folded) or PROVINCE_ALIASES.get(folded)


# ── Units ───────────────────────────────────────────────────────────

def to_api_integer(value: float, minimum: int = 0) -> int:
    """Half-up rounding to an integer (the API rejects decimals)."""
    rounded = int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return max(minimum, rounded)


def normalize_dimensions(dimensions: PackageDimensions) -> dict:
    """Integer grams / centimetres, each at least 1."""
    return {
        "weight": to_api_integer(dimensions.weight, minimum=MIN_WEIGHT_GRAMS),
        "height": to_api_integer(dimensions.height, minimum=1),
        "width": to_api_integer(dimensions.width, minimum=1),
        "length": to_api_integer(dimensions.length, minimum=1),
    }


def estimate_package(units: int) -> PackageDimensions:
    """Default box for a cart: 300 g per unit (500 g minimum), 10 x 20 x 30 cm."""
    weight = max(MIN_PACKAGE_WEIGHT_GRAMS, max(0, units) * GRAMS_PER_UNIT)
    return PackageDimensions(weight=weight, **DEFAULT_PACKAGE_DIMENSIONS)


# ── Rate requests ───────────────────────────────────────────────────

def rate_request_errors(request: RateRequest) -> list[str]:
    errors = []
    if not request.customer_id:
        errors.append("customerId is required")
    if normalize_postal_code(request.postal_code_origin) is None:
        errors.append("postalCodeOrigin must contain 4 digits")
    if normalize_postal_code(request.postal_code_destination) is None:
        errors.append("postalCodeDestination must contain 4 digits")

    dims = request.dimensions
    if not (MIN_WEIGHT_GRAMS <= dims.weight <= MAX_WEIGHT_GRAMS):
        errors.append(
            f"weight must be between {MIN_WEIGHT_GRAMS} and {MAX_WEIGHT_GRAMS} grams"
        )
    for name in ("height", "width", "length"):
        value = getattr(dims, name)
        if value <= 0:
            errors.append(f"{name} must be greater than 0")
        elif value > MAX_DIMENSION_CM:
            errors.append(f"{name} must not exceed {MAX_DIMENSION_CM} cm")
    return errors


def validate_rate_request(request: RateRequest) -> None:
    """Raise ValidationError listing every problem with the rate request."""
    errors = rate_request_errors(request)
    if errors:
        raise ValidationError("Invalid rate request", details={"errors": errors})


def build_rate_payload(request: RateRequest) -> dict:
    """JSON body for POST /rates. Call after validate_rate_request()."""
    payload = {
        "customerId": request.customer_id,
        "postalCodeOrigin": normalize_postal_code(request.postal_code_origin),
        "postalCodeDestination": normalize_postal_code(request.postal_code_destination),
        "dimensions": normalize_dimensions(request.dimensions),
    }
    if request.delivered_type:
        payload["deliveredType"] = request.delivered_type
    return payload


# ── Shipment import ─────────────────────────────────────────────────

def validate_shipment_import(request: ImportShipmentRequest) -> None:
    """
    Home delivery ("D") needs a complete address; agency pickup ("S")
    needs an agency code.
    """
    shipping = request.shipping
    if shipping.delivery_type == "D":
        address = shipping.address
        required = ("street_name", "street_number", "city", "province_code", "postal_code")
        missing = [f for f in required if not address or not getattr(address, f)]
        if missing:
            raise ValidationError(
                "Home delivery requires a complete address",
                details={"code": "MISSING_ADDRESS", "missing": missing},
            )
    elif shipping.delivery_type == "S":
        if not shipping.agency:
            raise ValidationError(
                "Agency pickup requires an agency code",
                details={"code": "MISSING_AGENCY"},
            )


def build_import_payload(request: ImportShipmentRequest) -> dict:
    """JSON body for POST /shipping/import. Call after validate_shipment_import()."""
    payload = request.to_payload()
    shipping = payload["shipping"]
    shipping.pop("originAgency", None)

    address = shipping.get("address")
    if address:
        if address.get("floor"):
            address["floor"] = address["floor"][:MAX_FLOOR_LENGTH]
        if address.get("apartment"):
            address["apartment"] = address["apartment"][:MAX_APARTMENT_LENGTH]

    for field in ("weight", "height", "length", "width"):
        shipping[field] = to_api_integer(shipping[field])
    return payload


# ── Zone table ──────────────────────────────────────────────────────

BASE_SHIPPING_OPTIONS = [
    {
        "id": "pickup",
        "name": "Retiro en tienda",
        "description": "Retira tu pedido en nuestra tienda física",
        "price": 0,
        "estimatedDays": "Inmediato",
    },
    {
        "id": "standard",
        "name": "Envío estándar",
        "description": "Envío a domicilio en 3-5 días hábiles",
        "price": 1500,
        "estimatedDays": "3-5 días",
    },
    {
        "id": "express",
        "name": "Envío express",
        "description": "Envío prioritario en 24-48 horas",
        "price": 2500,
        "estimatedDays": "24-48 horas",
    },
]

# (postal code ranges, {option id: (price, estimated days)})
SHIPPING_ZONES = [
    (  # CABA
        [(1000, 1499)],
        {"standard": (800, "2-3 días"), "express": (1500, "24 horas")},
    ),
    (  # GBA
        [(1500, 1999)],
        {"standard": (1200, "2-4 días"), "express": (2000, "24-48 horas")},
    ),
    (  # nearby provinces
        [(2000, 3599), (5000, 5999)],
        {"standard": (1800, "3-5 días"), "express": (3000, "48-72 horas")},
    ),
]
REST_OF_COUNTRY = {"standard": (2500, "5-7 días"), "express": (4000, "72-96 horas")}


def calculate_shipping_options(postal_code: str) -> list[dict]:
    """Pickup / standard / express priced by postal code zone."""
    if not postal_code or not _ZONE_POSTAL_CODE_RE.match(postal_code.strip()):
        raise ValidationError(
            "Invalid postal code: expected 4 digits, optionally preceded by a letter",
            field="postalCode",
        )
    numeric = int(re.sub(r"[A-Za-z]", "", postal_code.strip()))

    overrides = REST_OF_COUNTRY
    for ranges, zone in SHIPPING_ZONES:
        if any(low <= numeric <= high for low, high in ranges):
            overrides = zone
            break

    options = []
    for option in BASE_SHIPPING_OPTIONS:
        option = dict(option)
        if option["id"] in overrides:
            option["price"], option["estimatedDays"] = overrides[option["id"]]
        options.append(option)
    return options
