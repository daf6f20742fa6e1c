"""
Correo Argentino account endpoints (admin).

The store ships under one MiCorreo customer id (CORREO_ARGENTINO_CUSTOMER_ID).
These endpoints obtain it, either for an existing MiCorreo user or by
registering a new one.
"""

import logging

from fastapi import APIRouter, Depends

from deps import require_admin
from domain.responses import success_response
from models import CarrierUserValidateRequest, RegisterUserRequest

logger = logging.getLogger(__name__)
admin_router = APIRouter(prefix="/admin/carrier", tags=["admin"], dependencies=[Depends(require_admin)])


@admin_router.post("/users/validate")
async def validate_carrier_user(request: CarrierUserValidateRequest):
    """Look up the customer id of an existing MiCorreo account."""
    from services.correo_argentino import get_carrier_client

    customer = await get_carrier_client().validate_user(request.email, request.password)
    logger.info(f"MiCorreo user {request.email} validated (customer {customer.customer_id})")
    return success_response(data=customer.model_dump(by_alias=True))


@admin_router.post("/register")
async def register_carrier_user(request: RegisterUserRequest):
    from services.correo_argentino import get_carrier_client

    customer = await get_carrier_client().register_user(request)
    logger.info(f"MiCorreo user {request.email} registered (customer {customer.customer_id})")
    return success_response(data=customer.model_dump(by_alias=True))
