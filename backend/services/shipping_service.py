"""
Shipping service — carrier quotes, agency lookup and the agency cache.

Carrier quotes are exposed as shipping options with ids
"ca-<deliveredType>-<productType>" (e.g. "ca-D-CP"); checkout recognizes the
"ca-" prefix and re-quotes server-side before charging.
"""
import json
import logging
import math
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import CarrierAgency
from domain.constants import CARRIER_OPTION_PREFIX, PROVINCES
from domain.errors import CarrierError, ValidationError
from models import Agency, PackageDimensions, RateQuote, RateRequest
from services import shipping_rules
from services.correo_argentino import get_carrier_client

logger = logging.getLogger(__name__)


def option_id_for(quote: RateQuote) -> str:
    return f"{CARRIER_OPTION_PREFIX}{quote.delivered_type}-{quote.product_type}"


def quote_to_option(quote: RateQuote) -> dict:
    if quote.delivery_time_min and quote.delivery_time_max:
        days = f"{quote.delivery_time_min}-{quote.delivery_time_max} días"
    else:
        days = quote.delivery_time_max or quote.delivery_time_min or ""
    suffix = "a sucursal" if quote.delivered_type == "S" else "a domicilio"
    return {
        "id": option_id_for(quote),
        "name": f"{quote.product_name} ({suffix})",
        "description": f"Correo Argentino, envío {suffix}",
        "price": quote.price,
        "estimatedDays": days,
        "deliveredType": quote.delivered_type,
        "productType": quote.product_type,
    }


async def quote_rates(
    *,
    postal_code_destination: str,
    units: int | None = None,
    dimensions: PackageDimensions | None = None,
    delivered_type: str | None = None,
) -> list[dict]:
    """Carrier options for a destination, from the store's origin postal code."""
    if dimensions is None:
        dimensions = shipping_rules.estimate_package(units or 1)
    request = RateRequest(
        customer_id=settings.correo_argentino_customer_id,
        postal_code_origin=settings.store_postal_code,
        postal_code_destination=postal_code_destination,
        delivered_type=delivered_type,
        dimensions=dimensions,
    )
    rates = await get_carrier_client().get_rates(request)
    return [quote_to_option(q) for q in rates.rates]


async def price_carrier_option(*, option_id: str, postal_code_destination: str, units: int) -> dict:
    """Re-quote and return the option matching `option_id` (e.g. "ca-S-CP")."""
    parts = option_id.split("-")
    if len(parts) != 3 or parts[1] not in ("D", "S"):
        raise ValidationError(f"Unknown shipping method: {option_id}", field="shippingMethod")
    options = await quote_rates(
        postal_code_destination=postal_code_destination,
        units=units,
        delivered_type=parts[1],
    )
    for option in options:
        if option["id"] == option_id:
            return option
    raise ValidationError(
        f"Shipping method {option_id} is not available for postal code {postal_code_destination}",
        field="shippingMethod",
    )


# ── Agencies ────────────────────────────────────────────────────────

def _postal_code_matches(agency_postal_code: str | None, postal_code: str) -> bool:
    if not agency_postal_code:
        return False
    return (
        agency_postal_code == postal_code
        or agency_postal_code.startswith(postal_code)
        or postal_code.startswith(agency_postal_code)
    )


def serialize_agency(agency: Agency) -> dict:
    return agency.model_dump(by_alias=True)


def serialize_cached_agency(row: CarrierAgency) -> dict:
    return {
        "code": row.code,
        "name": row.name,
        "provinceCode": row.province_code,
        "city": row.city,
        "streetName": row.street_name,
        "streetNumber": row.street_number,
        "postalCode": row.postal_code,
        "latitude": row.latitude,
        "longitude": row.longitude,
        "phone": row.phone,
        "services": json.loads(row.services) if row.services else None,
    }


async def find_agencies(
    db: AsyncSession,
    *,
    province_code: str,
    postal_code: str | None = None,
) -> dict:
    """
    Live agency lookup filtered by postal code.

    When the carrier is unavailable the synced cache answers instead; with
    an empty cache the CarrierError propagates.
    """
    province_code = (province_code or "").upper()
    try:
        agencies = await get_carrier_client().get_agencies(province_code)
    except CarrierError as e:
        cached = await list_cached_agencies(db, province_code=province_code, postal_code=postal_code)
        if not cached:
            raise
        logger.warning(f"Agency lookup failed ({e.code}); serving {len(cached)} cached agencies")
        return {"agencies": [serialize_cached_agency(a) for a in cached], "source": "cache"}

    if postal_code:
        total = len(agencies)
        agencies = [
            a for a in agencies
            if _postal_code_matches(a.location.address.postal_code, postal_code)
        ]
        logger.info(f"Agencies for {province_code} filtered by {postal_code}: {len(agencies)}/{total}")
    return {"agencies": [serialize_agency(a) for a in agencies], "source": "carrier"}


def _to_float(value) -> float | None:
    try:
        return float(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


async def sync_agencies(db: AsyncSession, *, province_codes: list[str] | None = None) -> dict:
    """Fetch agencies per province from the carrier and upsert them by code."""
    codes = [c.upper() for c in (province_codes or PROVINCES.keys())]
    unknown = [c for c in codes if c not in PROVINCES]
    if unknown:
        raise ValidationError(f"Unknown province codes: {', '.join(unknown)}", field="provinceCodes")

    client = get_carrier_client()
    created = updated = 0
    failed: list[str] = []
    for province_code in codes:
        try:
            agencies = await client.get_agencies(province_code)
        except CarrierError as e:
            logger.error(f"Agency sync for province {province_code} failed: {e.message}")
            failed.append(province_code)
            continue

        seen: dict[str, CarrierAgency] = {}
        for agency in agencies:
            row = seen.get(agency.code)
            if row is None:
                res = await db.execute(select(CarrierAgency).where(CarrierAgency.code == agency.code))
                row = res.scalar_one_or_none()
                if row is None:
                    row = CarrierAgency(code=agency.code)
                    db.add(row)
                    created += 1
                else:
                    updated += 1
                seen[agency.code] = row
            address = agency.location.address
            row.name = agency.name
            row.province_code = (address.province_code or province_code).upper()
            row.city = address.city
            row.street_name = address.street_name
            row.street_number = address.street_number
            row.postal_code = address.postal_code
            row.latitude = _to_float(agency.location.latitude)
            row.longitude = _to_float(agency.location.longitude)
            row.phone = agency.phone
            row.services = json.dumps(agency.services.model_dump(by_alias=True))
            row.active = agency.status == "ACTIVE"
            row.synced_at = datetime.utcnow()
        await db.flush()

    logger.info(f"Agency sync: {created} created, {updated} updated, {len(failed)} province(s) failed")
    return {"created": created, "updated": updated, "failedProvinces": failed}


async def list_cached_agencies(
    db: AsyncSession,
    *,
    province_code: str | None = None,
    postal_code: str | None = None,
) -> list[CarrierAgency]:
    conditions = [CarrierAgency.active == True]  # noqa: E712
    if province_code:
        conditions.append(CarrierAgency.province_code == province_code.upper())
    res = await db.execute(select(CarrierAgency).where(*conditions).order_by(CarrierAgency.name))
    rows = res.scalars().all()
    if postal_code:
        rows = [r for r in rows if _postal_code_matches(r.postal_code, postal_code)]
    return rows


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    r = 6371.0
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * r * math.asin(math.sqrt(a))


async def nearest_agency(
    db: AsyncSession,
    *,
    latitude: float,
    longitude: float,
    province_code: str | None = None,
) -> tuple[CarrierAgency, float] | None:
    """Closest cached agency with coordinates, and its distance in km."""
    best = None
    for row in await list_cached_agencies(db, province_code=province_code):
        if row.latitude is None or row.longitude is None:
            continue
        distance = haversine_km(latitude, longitude, row.latitude, row.longitude)
        if best is None or distance < best[1]:
            best = (row, distance)
    return best
