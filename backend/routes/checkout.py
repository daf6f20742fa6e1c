"""
Checkout endpoint — places cash / transfer orders or starts a MercadoPago payment.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from domain.responses import success_response
from middleware.rate_limit import rate_limit
from models import CheckoutRequest

logger = logging.getLogger(__name__)
router = APIRouter(tags=["checkout"])


@router.post("/checkout")
async def checkout(
    request: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit()),
):
    from services import checkout_service

    try:
        result = await checkout_service.checkout(db, request)
    except Exception:
        await db.rollback()
        raise
    await db.commit()
    return success_response(data=result)
