"""
Catalog endpoints — public product listing plus admin product management.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import Pagination, pagination_params, require_admin
from domain.responses import paginated_response, success_response
from models import (
    CategoryCreateRequest,
    ProductCreateRequest,
    ProductUpdateRequest,
    VariantsUpdateRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter(tags=["catalog"])
admin_router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _category_data(c) -> dict:
    return {"id": c.id, "name": c.name, "description": c.description}


# ── Public ──────────────────────────────────────────────────────────

@router.get("/products")
async def list_products(
    category_id: Optional[int] = Query(None, alias="categoryId"),
    page: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
):
    from services import catalog_service

    products, total = await catalog_service.list_products(
        db, category_id=category_id, limit=page["limit"], offset=page["offset"]
    )
    return paginated_response(
        [catalog_service.serialize_product(p) for p in products],
        limit=page["limit"],
        offset=page["offset"],
        total=total,
    )


@router.get("/products/{product_id}")
async def get_product(product_id: int, db: AsyncSession = Depends(get_db)):
    from services import catalog_service

    product = await catalog_service.get_product(db, product_id=product_id)
    variants = await catalog_service.list_variants(db, product_id=product.id)
    return success_response(data=catalog_service.serialize_product(product, variants))


@router.get("/categories")
async def list_categories(db: AsyncSession = Depends(get_db)):
    from services import catalog_service

    categories = await catalog_service.list_categories(db)
    return success_response(data=[_category_data(c) for c in categories], meta={"total": len(categories)})


# ── Admin ───────────────────────────────────────────────────────────

@admin_router.post("/categories")
async def create_category(request: CategoryCreateRequest, db: AsyncSession = Depends(get_db)):
    from services import catalog_service

    category = await catalog_service.create_category(
        db, name=request.name.strip(), description=request.description
    )
    await db.commit()
    await db.refresh(category)
    return success_response(data=_category_data(category))


@admin_router.post("/products")
async def create_product(request: ProductCreateRequest, db: AsyncSession = Depends(get_db)):
    from services import catalog_service

    product = await catalog_service.create_product(db, **request.model_dump())
    await db.commit()
    await db.refresh(product)
    logger.info(f"Product {product.id} created: {product.name}")
    return success_response(data=catalog_service.serialize_product(product))


@admin_router.patch("/products/{product_id}")
async def update_product(
    product_id: int,
    request: ProductUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    from services import catalog_service

    product = await catalog_service.update_product(
        db, product_id=product_id, **request.model_dump(exclude_unset=True)
    )
    await db.commit()
    await db.refresh(product)
    return success_response(data=catalog_service.serialize_product(product))


@admin_router.delete("/products/{product_id}")
async def delete_product(product_id: int, db: AsyncSession = Depends(get_db)):
    from services import catalog_service

    product = await catalog_service.soft_delete_product(db, product_id=product_id)
    await db.commit()
    return success_response(
        data={
            "id": product.id,
            "message": f"Product '{product.name}' deactivated",
        }
    )


@admin_router.put("/products/{product_id}/variants")
async def set_variants(
    product_id: int,
    request: VariantsUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    from services import catalog_service

    await catalog_service.set_variants(
        db,
        product_id=product_id,
        variants=[v.model_dump() for v in request.variants],
    )
    await db.commit()
    product = await catalog_service.get_product(db, product_id=product_id, include_inactive=True)
    await db.refresh(product)
    variants = await catalog_service.list_variants(db, product_id=product_id)
    return success_response(data=catalog_service.serialize_product(product, variants))
