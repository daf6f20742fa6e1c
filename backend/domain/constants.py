"""
Domain constants used across services/routers.
"""
from domain.enums import OrderStatus

# Correo Argentino MiCorreo API
CORREO_ARGENTINO_TEST_URL = "https://apitest.correoargentino.com.ar/micorreo/v1"
CORREO_ARGENTINO_PROD_URL = "https://api.correoargentino.com.ar/micorreo/v1"
CARRIER_TOKEN_FALLBACK_HOURS = 12

# Package limits accepted by the rates endpoint
MIN_WEIGHT_GRAMS = 1
MAX_WEIGHT_GRAMS = 25000
MAX_DIMENSION_CM = 150

# Import payload: floor / apartment are 3 chars max
MAX_FLOOR_LENGTH = 3
MAX_APARTMENT_LENGTH = 3

# Estimated package when the cart carries no dimensions
GRAMS_PER_UNIT = 300
MIN_PACKAGE_WEIGHT_GRAMS = 500
DEFAULT_PACKAGE_DIMENSIONS = {"height": 10, "width": 20, "length": 30}

# Province code → name (Correo Argentino codes; no I, O)
PROVINCES = {
    "A": "Salta",
    "B": "Buenos Aires",
    "C": "Ciudad Autónoma de Buenos Aires",
    "D": "San Luis",
    "E": "Entre Ríos",
    "F": "La Rioja",
    "G": "Santiago del Estero",
    "H": "Chaco",
    "J": "San Juan",
    "K": "Catamarca",
    "L": "La Pampa",
    "M": "Mendoza",
    "N": "Misiones",
    "P": "Formosa",
    "Q": "Neuquén",
    "R": "Río Negro",
    "S": "Santa Fe",
    "T": "Tucumán",
    "U": "Chubut",
    "V": "Tierra del Fuego",
    "W": "Corrientes",
    "X": "Córdoba",
    "Y": "Jujuy",
    "Z": "Santa Cruz",
}

# Common aliases for province names that do not match PROVINCES verbatim
PROVINCE_ALIASES = {
    "caba": "C",
    "capital federal": "C",
    "ciudad de buenos aires": "C",
    "tierra del fuego, antartida e islas del atlantico sur": "V",
}

# Linear order lifecycle
ORDER_STATUS_FLOW = [
    OrderStatus.PENDING,
    OrderStatus.PENDING_PAYMENT,
    OrderStatus.PROCESSED,
    OrderStatus.DELIVERED,
]

# Shipping option ids that are not carrier quotes
PICKUP_OPTION_ID = "pickup"
CARRIER_OPTION_PREFIX = "ca-"

# Webhook external reference prefix for checkouts not yet persisted
TEMP_ORDER_PREFIX = "tmp_"
