"""
Unit tests for the order service.

Tests the linear lifecycle, stock decrement on payment confirmation and
MercadoPago payment notifications.
"""
import pytest
from sqlalchemy import select

from db_models import Order, Product, ProductVariant, StockReservation
from domain.enums import OrderStatus
from domain.errors import InvalidStatusTransitionError, NotFoundError
from services import order_service, stock_reservation_service


async def _order(db, product, quantity=2, **extra):
    return await order_service.create_order(
        db,
        customer={"name": "Ana", "email": "ana@example.com"},
        shipping={"method_id": "pickup", "method_name": "Retiro en tienda"},
        lines=[
            {
                "product_id": product.id,
                "name": product.name,
                "quantity": quantity,
                "unit_price": product.price,
                **extra,
            }
        ],
        subtotal=product.price * quantity,
        discount=0,
        shipping_cost=0,
        total=product.price * quantity,
        payment_method="cash",
    )


def _payment(payment_id="9001", status="approved", **overrides):
    payment = {
        "id": payment_id,
        "status": status,
        "transaction_amount": 2000,
        "external_reference": "tmp_00112233aabbccdd",
        "metadata": {
            "temp_order_id": "tmp_00112233aabbccdd",
            "items": [{"product_id": 1, "quantity": 2}],
            "discount": 0,
            "shipping_cost": 0,
            "customer_name": "Ana",
            "customer_email": "ana@example.com",
            "shipping_method_id": "pickup",
        },
    }
    payment.update(overrides)
    return payment


class TestTransitions:

    @pytest.mark.unit
    def test_linear_flow(self):
        assert order_service.can_transition("PENDING", "PENDING_PAYMENT")
        assert order_service.can_transition("PENDING_PAYMENT", "PROCESSED")
        assert order_service.can_transition("PROCESSED", "DELIVERED")

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "current,target",
        [
            ("PENDING", "PROCESSED"),
            ("PENDING", "DELIVERED"),
            ("PROCESSED", "PENDING_PAYMENT"),
            ("DELIVERED", "PENDING"),
            ("DELIVERED", "DELIVERED"),
            ("PENDING", "PENDING"),
        ],
    )
    def test_rejects_skips_and_backward_moves(self, current, target):
        assert not order_service.can_transition(current, target)

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "mp_status,expected",
        [("approved", "PENDING_PAYMENT"), ("pending", "PENDING"), ("rejected", "PENDING"), (None, "PENDING")],
    )
    def test_payment_status_mapping(self, mp_status, expected):
        assert order_service.map_payment_status(mp_status) == expected


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_full_lifecycle_sets_timestamps(self, db_session, sample_product):
        order = await _order(db_session, sample_product)
        assert order.status == OrderStatus.PENDING.value

        await order_service.confirm_payment(db_session, order_id=order.id)
        await order_service.mark_processed(db_session, order_id=order.id)
        await order_service.mark_delivered(db_session, order_id=order.id)

        assert order.status == OrderStatus.DELIVERED.value
        assert order.paid_at and order.processed_at and order.delivered_at

    @pytest.mark.asyncio
    async def test_skip_raises(self, db_session, sample_product):
        order = await _order(db_session, sample_product)
        with pytest.raises(InvalidStatusTransitionError) as exc:
            await order_service.mark_delivered(db_session, order_id=order.id)
        assert exc.value.details == {"current": "PENDING", "target": "DELIVERED"}
        assert order.status == OrderStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_confirm_twice_raises(self, db_session, sample_product):
        order = await _order(db_session, sample_product)
        await order_service.confirm_payment(db_session, order_id=order.id)
        with pytest.raises(InvalidStatusTransitionError):
            await order_service.confirm_payment(db_session, order_id=order.id)

    @pytest.mark.asyncio
    async def test_confirm_decrements_stock_once(self, db_session, sample_product):
        order = await _order(db_session, sample_product, quantity=3)
        await order_service.confirm_payment(db_session, order_id=order.id)
        await order_service.decrement_stock(db_session, order=order)

        product = await db_session.get(Product, sample_product.id)
        assert product.stock == 7
        assert order.stock_decremented is True

    @pytest.mark.asyncio
    async def test_variant_stock_decremented(self, db_session, variant_product):
        order = await _order(db_session, variant_product, quantity=2, color="Rojo", size="M")
        await order_service.confirm_payment(db_session, order_id=order.id)

        res = await db_session.execute(
            select(ProductVariant).where(ProductVariant.product_id == variant_product.id, ProductVariant.color == "Rojo")
        )
        assert res.scalar_one().stock == 1
        assert (await db_session.get(Product, variant_product.id)).stock == 3

    @pytest.mark.asyncio
    async def test_unknown_order(self, db_session):
        with pytest.raises(NotFoundError):
            await order_service.get_order(db_session, order_id="ord_ffffffffffffffff")

    @pytest.mark.asyncio
    async def test_list_orders_by_status(self, db_session, sample_product):
        first = await _order(db_session, sample_product)
        await _order(db_session, sample_product)
        await order_service.confirm_payment(db_session, order_id=first.id)

        pending, total = await order_service.list_orders(db_session, status="PENDING")
        assert total == 1
        paid, _ = await order_service.list_orders(db_session, status="PENDING_PAYMENT")
        assert [o.id for o in paid] == [first.id]


class TestPaymentNotifications:

    @pytest.mark.asyncio
    async def test_approved_payment_creates_order(self, db_session, sample_product):
        await stock_reservation_service.reserve_items(
            db_session,
            session_id="tmp_00112233aabbccdd",
            items=[{"product_id": sample_product.id, "quantity": 2}],
        )

        order, should_ship = await order_service.process_payment_notification(db_session, payment=_payment())

        assert should_ship is True
        assert order.id == "tmp_00112233aabbccdd"
        assert order.status == OrderStatus.PENDING_PAYMENT.value
        assert order.mp_payment_id == "9001"
        assert order.total == 2000
        assert (await db_session.get(Product, sample_product.id)).stock == 8
        remaining = (await db_session.execute(select(StockReservation))).scalars().all()
        assert remaining == []

    @pytest.mark.asyncio
    async def test_prices_come_from_catalog(self, db_session, sample_product):
        payment = _payment()
        payment["metadata"]["items"] = [{"productId": 1, "quantity": 1, "unit_price": 1}]
        order, _ = await order_service.process_payment_notification(db_session, payment=payment)

        items = await order_service.get_order_items(db_session, order_id=order.id)
        assert items[0].unit_price == 1000
        assert order.subtotal == 1000

    @pytest.mark.asyncio
    async def test_idempotent_on_payment_id(self, db_session, sample_product):
        await order_service.process_payment_notification(db_session, payment=_payment())
        order, should_ship = await order_service.process_payment_notification(db_session, payment=_payment())

        assert should_ship is False
        assert order.status == OrderStatus.PENDING_PAYMENT.value
        assert (await db_session.get(Product, sample_product.id)).stock == 8
        count = len((await db_session.execute(select(Order))).scalars().all())
        assert count == 1

    @pytest.mark.asyncio
    async def test_pending_then_approved(self, db_session, sample_product):
        order, should_ship = await order_service.process_payment_notification(
            db_session, payment=_payment(status="in_process")
        )
        assert should_ship is False
        assert order.status == OrderStatus.PENDING.value
        assert order.mp_status == "in_process"

        order, should_ship = await order_service.process_payment_notification(db_session, payment=_payment())
        assert should_ship is True
        assert order.status == OrderStatus.PENDING_PAYMENT.value

    @pytest.mark.asyncio
    async def test_rejected_never_moves_backward(self, db_session, sample_product):
        await order_service.process_payment_notification(db_session, payment=_payment())
        order, _ = await order_service.process_payment_notification(
            db_session, payment=_payment(status="refunded")
        )
        assert order.status == OrderStatus.PENDING_PAYMENT.value
        assert order.mp_status == "refunded"

    @pytest.mark.asyncio
    async def test_coupon_redeemed_on_approval(self, db_session, sample_product, sample_coupon):
        payment = _payment()
        payment["metadata"]["coupon_code"] = "verano10"
        payment["metadata"]["discount"] = 200
        order, _ = await order_service.process_payment_notification(db_session, payment=payment)

        assert order.discount == 200
        assert order.total == 1800
        assert sample_coupon.used_count == 1

    @pytest.mark.asyncio
    async def test_without_metadata_nothing_is_created(self, db_session):
        payment = _payment(external_reference=None, metadata={})
        order, should_ship = await order_service.process_payment_notification(db_session, payment=payment)
        assert order is None and should_ship is False
