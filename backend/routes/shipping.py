"""
Shipping endpoints — zone options, Correo Argentino quotes, agencies, tracking.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from domain.errors import NotFoundError
from domain.responses import success_response
from models import ShippingRatesRequest
from utils.validators import (
    validate_postal_code,
    validate_province_code,
    validated_postal_code_query,
    validated_province_query,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/shipping", tags=["shipping"])


@router.get("/options")
async def shipping_options(postal_code: str = Depends(validated_postal_code_query)):
    """Pickup / standard / express priced by postal code zone."""
    from services import shipping_rules

    options = shipping_rules.calculate_shipping_options(postal_code)
    return success_response(data=options, meta={"postalCode": postal_code})


@router.post("/rates")
async def carrier_rates(request: ShippingRatesRequest):
    """Live Correo Argentino quotes from the store to a destination."""
    from services import shipping_service

    destination = validate_postal_code(request.postal_code)
    options = await shipping_service.quote_rates(
        postal_code_destination=destination,
        units=request.units,
        dimensions=request.dimensions,
        delivered_type=request.delivered_type,
    )
    return success_response(data=options, meta={"postalCode": destination, "total": len(options)})


@router.get("/agencies")
async def agencies(
    province_code: str = Depends(validated_province_query),
    postal_code: Optional[str] = Query(None, alias="postalCode"),
    db: AsyncSession = Depends(get_db),
):
    from services import shipping_service

    normalized = validate_postal_code(postal_code) if postal_code else None
    result = await shipping_service.find_agencies(
        db, province_code=province_code, postal_code=normalized
    )
    return success_response(
        data=result["agencies"],
        meta={"source": result["source"], "total": len(result["agencies"])},
    )


@router.get("/agencies/nearest")
async def nearest_agency(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    province_code: Optional[str] = Query(None, alias="provinceCode"),
    db: AsyncSession = Depends(get_db),
):
    """Closest synced agency to a point (uses the agency cache, not the live API)."""
    from services import shipping_service

    code = validate_province_code(province_code) if province_code else None
    found = await shipping_service.nearest_agency(db, latitude=latitude, longitude=longitude, province_code=code)
    if found is None:
        raise NotFoundError("Agency", f"near {latitude},{longitude}")
    row, distance = found
    return success_response(
        data={**shipping_service.serialize_cached_agency(row), "distanceKm": round(distance, 2)}
    )


@router.get("/tracking/{shipping_id}")
async def tracking(shipping_id: str):
    from services.correo_argentino import get_carrier_client

    results = await get_carrier_client().get_tracking(shipping_id)
    return success_response(data=[t.model_dump(by_alias=True) for t in results])
