"""
Unit tests for stock reservations.
"""
from datetime import datetime, timedelta

import pytest

from db_models import StockReservation
from domain.errors import ValidationError
from services import stock_reservation_service


@pytest.mark.asyncio
async def test_reservations_reduce_available_stock(db_session, sample_product):
    await stock_reservation_service.reserve_items(
        db_session, session_id="tmp_a", items=[{"product_id": sample_product.id, "quantity": 4}]
    )
    assert await stock_reservation_service.available_stock(db_session, sample_product.id) == 6


@pytest.mark.asyncio
async def test_all_or_nothing(db_session, sample_product, variant_product):
    with pytest.raises(ValidationError) as exc:
        await stock_reservation_service.reserve_items(
            db_session,
            session_id="tmp_b",
            items=[
                {"product_id": sample_product.id, "quantity": 1},
                {"product_id": variant_product.id, "quantity": 3, "color": "Azul", "size": "L"},
            ],
        )
    assert exc.value.details["available"] == 2
    assert await stock_reservation_service.available_stock(db_session, sample_product.id) == 10


@pytest.mark.asyncio
async def test_duplicate_lines_are_summed(db_session, sample_product):
    with pytest.raises(ValidationError):
        await stock_reservation_service.reserve_items(
            db_session,
            session_id="tmp_c",
            items=[
                {"product_id": sample_product.id, "quantity": 6},
                {"product_id": sample_product.id, "quantity": 5},
            ],
        )


@pytest.mark.asyncio
async def test_variant_reservations_are_per_variant(db_session, variant_product):
    await stock_reservation_service.reserve_items(
        db_session,
        session_id="tmp_d",
        items=[{"product_id": variant_product.id, "quantity": 2, "color": "Rojo", "size": "M"}],
    )
    assert await stock_reservation_service.available_stock(db_session, variant_product.id, "Rojo", "M") == 1
    assert await stock_reservation_service.available_stock(db_session, variant_product.id, "Azul", "L") == 2


@pytest.mark.asyncio
async def test_release(db_session, sample_product):
    await stock_reservation_service.reserve_items(
        db_session, session_id="tmp_e", items=[{"product_id": sample_product.id, "quantity": 4}]
    )
    assert await stock_reservation_service.release_reservations(db_session, session_id="tmp_e") == 1
    assert await stock_reservation_service.available_stock(db_session, sample_product.id) == 10


@pytest.mark.asyncio
async def test_expired_reservations_ignored_and_cleaned(db_session, sample_product):
    db_session.add(
        StockReservation(
            session_id="tmp_old",
            product_id=sample_product.id,
            quantity=9,
            expires_at=datetime.utcnow() - timedelta(minutes=1),
        )
    )
    await db_session.flush()

    assert await stock_reservation_service.available_stock(db_session, sample_product.id) == 10
    assert await stock_reservation_service.cleanup_expired(db_session) == 1


@pytest.mark.asyncio
async def test_color_choices_on_plain_product_share_stock(db_session, sample_product):
    with pytest.raises(ValidationError) as exc:
        await stock_reservation_service.reserve_items(
            db_session,
            session_id="tmp_f",
            items=[
                {"product_id": sample_product.id, "quantity": 6, "color": "Rojo", "size": "M"},
                {"product_id": sample_product.id, "quantity": 6, "color": "Azul", "size": "L"},
            ],
        )
    assert exc.value.details == {"productId": sample_product.id, "available": 10, "requested": 12}


@pytest.mark.asyncio
async def test_plain_product_reservations_ignore_color(db_session, sample_product):
    await stock_reservation_service.reserve_items(
        db_session,
        session_id="tmp_g",
        items=[{"product_id": sample_product.id, "quantity": 8, "color": "Rojo", "size": "M"}],
    )
    assert await stock_reservation_service.available_stock(db_session, sample_product.id, "Azul", "L") == 2
    assert await stock_reservation_service.available_stock(db_session, sample_product.id) == 2


@pytest.mark.asyncio
async def test_product_total_limits_variant_and_plain_lines(db_session, variant_product):
    await stock_reservation_service.reserve_items(
        db_session,
        session_id="tmp_h",
        items=[{"product_id": variant_product.id, "quantity": 3, "color": "Rojo", "size": "M"}],
    )
    assert await stock_reservation_service.available_stock(db_session, variant_product.id) == 2

    with pytest.raises(ValidationError) as exc:
        await stock_reservation_service.reserve_items(
            db_session, session_id="tmp_i", items=[{"product_id": variant_product.id, "quantity": 3}]
        )
    assert exc.value.details["available"] == 2
