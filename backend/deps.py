"""
Shared FastAPI dependencies.

Routers import the DB session, the admin guard and pagination from here.
"""

from __future__ import annotations

from typing import TypedDict

from fastapi import Query

from database import get_db
from middleware.auth import require_admin
from middleware.rate_limit import rate_limit

__all__ = ["Pagination", "get_db", "pagination_params", "rate_limit", "require_admin"]


class Pagination(TypedDict):
    limit: int
    offset: int


def pagination_params(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0, le=100_000),
) -> Pagination:
    return {"limit": limit, "offset": offset}
