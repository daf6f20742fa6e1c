"""
Tests for the checkout service.

Tests stock validation, server-side pricing, the cash / transfer branch
(with carrier import) and the MercadoPago redirect branch.
"""
import pytest
from sqlalchemy import select

from config import settings
from db_models import Order, StockReservation
from domain.enums import CarrierImportStatus, OrderStatus
from domain.errors import NotFoundError, ValidationError
from models import CartItemIn, CheckoutRequest
from services import checkout_service


def _request(items, payment_method="cash", shipping_method=None, **extra) -> CheckoutRequest:
    customer = {
        "name": "Ana Pérez",
        "email": "ana@example.com",
        "phone": "3511234567",
        "streetName": "Av. Colón",
        "streetNumber": "1200",
        "city": "Córdoba",
        "province": "Córdoba",
        "postalCode": "5000",
    }
    customer.update(extra.pop("customer", {}))
    body = {
        "items": items,
        "customer": customer,
        "paymentMethod": payment_method,
        "shippingMethod": shipping_method,
        **extra,
    }
    return CheckoutRequest.model_validate(body)


CA_RATES = {
    "rates": [
        {"deliveredType": "D", "productType": "CP", "productName": "Clásico", "price": 5100.0},
        {"deliveredType": "S", "productType": "CP", "productName": "Clásico", "price": 3900.0},
    ]
}


class TestValidateStock:

    @pytest.mark.asyncio
    async def test_empty_cart(self, db_session):
        with pytest.raises(ValidationError):
            await checkout_service.validate_stock(db_session, [])

    @pytest.mark.asyncio
    async def test_insufficient_stock(self, db_session, sample_product):
        with pytest.raises(ValidationError) as exc:
            await checkout_service.validate_stock(
                db_session, [CartItemIn(product_id=sample_product.id, quantity=11)]
            )
        assert exc.value.details == {"productId": sample_product.id, "available": 10, "requested": 11}
        assert "Available: 10" in exc.value.message

    @pytest.mark.asyncio
    async def test_quantities_summed_across_lines(self, db_session, sample_product):
        with pytest.raises(ValidationError):
            await checkout_service.validate_stock(
                db_session,
                [
                    CartItemIn(product_id=sample_product.id, quantity=6),
                    CartItemIn(product_id=sample_product.id, quantity=5),
                ],
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", [0, -1])
    async def test_non_positive_quantity(self, db_session, sample_product, quantity):
        with pytest.raises(ValidationError):
            await checkout_service.validate_stock(
                db_session, [CartItemIn(product_id=sample_product.id, quantity=quantity)]
            )

    @pytest.mark.asyncio
    async def test_inactive_or_missing_product(self, db_session, sample_product):
        sample_product.active = False
        with pytest.raises(ValidationError):
            await checkout_service.validate_stock(db_session, [CartItemIn(product_id=sample_product.id, quantity=1)])
        with pytest.raises(ValidationError):
            await checkout_service.validate_stock(db_session, [CartItemIn(product_id=404, quantity=1)])

    @pytest.mark.asyncio
    async def test_variant_stock(self, db_session, variant_product):
        await checkout_service.validate_stock(
            db_session, [CartItemIn(product_id=variant_product.id, quantity=3, color="Rojo", size="M")]
        )
        with pytest.raises(ValidationError) as exc:
            await checkout_service.validate_stock(
                db_session, [CartItemIn(product_id=variant_product.id, quantity=3, color="Azul", size="L")]
            )
        assert exc.value.details["available"] == 2

    @pytest.mark.asyncio
    async def test_color_choices_on_plain_product_share_stock(self, db_session, sample_product):
        with pytest.raises(ValidationError) as exc:
            await checkout_service.validate_stock(
                db_session,
                [
                    CartItemIn(product_id=sample_product.id, quantity=6, color="Rojo", size="M"),
                    CartItemIn(product_id=sample_product.id, quantity=6, color="Azul", size="L"),
                ],
            )
        assert exc.value.details == {"productId": sample_product.id, "available": 10, "requested": 12}

    @pytest.mark.asyncio
    async def test_variant_and_plain_lines_share_product_total(self, db_session, variant_product):
        with pytest.raises(ValidationError) as exc:
            await checkout_service.validate_stock(
                db_session,
                [
                    CartItemIn(product_id=variant_product.id, quantity=3, color="Rojo", size="M"),
                    CartItemIn(product_id=variant_product.id, quantity=3),
                ],
            )
        assert exc.value.details["available"] == 5
        assert exc.value.details["requested"] == 6

    @pytest.mark.asyncio
    async def test_unknown_variant(self, db_session, variant_product):
        with pytest.raises(ValidationError) as exc:
            await checkout_service.validate_stock(
                db_session, [CartItemIn(product_id=variant_product.id, quantity=1, color="Verde", size="XL")]
            )
        assert "Verde / XL" in exc.value.message

    @pytest.mark.asyncio
    async def test_reservations_count_against_stock(self, db_session, sample_product):
        from services import stock_reservation_service

        await stock_reservation_service.reserve_items(
            db_session, session_id="tmp_x", items=[{"product_id": sample_product.id, "quantity": 8}]
        )
        with pytest.raises(ValidationError):
            await checkout_service.validate_stock(db_session, [CartItemIn(product_id=sample_product.id, quantity=3)])


class TestTotals:

    @pytest.mark.unit
    def test_compute_totals(self):
        assert checkout_service.compute_totals(3000, 300, 1800) == {
            "subtotal": 3000.0,
            "discount": 300.0,
            "shippingCost": 1800.0,
            "total": 4500.0,
        }

    @pytest.mark.unit
    def test_total_never_negative(self):
        assert checkout_service.compute_totals(100, 500, 0)["total"] == 0.0

    @pytest.mark.unit
    def test_rounds_to_cents(self):
        assert checkout_service.compute_totals(10.005, 0, 0.004)["total"] == 10.01


class TestCashCheckout:

    @pytest.mark.asyncio
    async def test_zone_shipping_and_coupon(self, db_session, sample_product, sample_coupon):
        request = _request(
            [{"productId": sample_product.id, "quantity": 3}],
            shipping_method={"id": "standard"},
            couponCode="verano10",
        )
        result = await checkout_service.checkout(db_session, request)

        order = result["order"]
        assert result["type"] == "order"
        assert order["status"] == OrderStatus.PENDING.value
        assert order["subtotal"] == 3000
        assert order["discount"] == 300
        assert order["shippingCost"] == 1800
        assert order["total"] == 4500
        assert order["shipping"]["provinceCode"] == "X"
        assert order["shipping"]["methodName"] == "Envío estándar"
        assert order["couponCode"] == "VERANO10"
        assert sample_coupon.used_count == 1
        assert result["carrierImported"] is None

    @pytest.mark.asyncio
    async def test_client_prices_are_ignored(self, db_session, sample_product):
        request = _request([{"productId": sample_product.id, "quantity": 1, "price": 1}], payment_method="transfer")
        result = await checkout_service.checkout(db_session, request)
        assert result["order"]["items"][0]["unitPrice"] == 1000
        assert result["order"]["total"] == 1000

    @pytest.mark.asyncio
    async def test_carrier_method_imports_shipment(self, db_session, sample_product, carrier, sent_emails):
        carrier.set("POST", "/rates", 200, CA_RATES)
        carrier.set("POST", "/shipping/import", 200, {"trackingNumber": "TN42"})
        request = _request([{"productId": sample_product.id, "quantity": 1}], shipping_method={"id": "ca-D-CP"})

        result = await checkout_service.checkout(db_session, request)

        assert result["order"]["shippingCost"] == 5100
        assert result["carrierImported"] is True
        assert result["order"]["carrier"]["trackingNumber"] == "TN42"
        body = carrier.json_of(carrier.calls_to("/shipping/import")[0])
        assert body["shipping"]["deliveryType"] == "D"
        assert body["shipping"]["address"]["provinceCode"] == "X"

    @pytest.mark.asyncio
    async def test_carrier_import_failure_keeps_order(self, db_session, sample_product, carrier):
        carrier.set("POST", "/rates", 200, CA_RATES)
        carrier.set("POST", "/shipping/import", 500, {"message": "boom"})
        request = _request(
            [{"productId": sample_product.id, "quantity": 1}],
            shipping_method={"id": "ca-S-CP"},
            shippingAgencyCode="X0001",
        )

        result = await checkout_service.checkout(db_session, request)

        assert result["carrierImported"] is False
        order = await db_session.get(Order, result["order"]["id"])
        assert order.carrier_import_status == CarrierImportStatus.FAILED.value
        assert order.shipping_agency_code == "X0001"
        assert order.shipping_cost == 3900

    @pytest.mark.asyncio
    async def test_unexpected_import_body_keeps_order(self, db_session, sample_product, carrier):
        carrier.set("POST", "/rates", 200, CA_RATES)
        carrier.set("POST", "/shipping/import", 200, {"trackingNumber": {"value": "TN42"}})
        request = _request([{"productId": sample_product.id, "quantity": 1}], shipping_method={"id": "ca-D-CP"})

        result = await checkout_service.checkout(db_session, request)

        assert result["carrierImported"] is False
        order = await db_session.get(Order, result["order"]["id"])
        assert order.status == OrderStatus.PENDING.value
        assert order.carrier_import_status == CarrierImportStatus.FAILED.value

    @pytest.mark.asyncio
    async def test_agency_pickup_requires_agency(self, db_session, sample_product, carrier):
        request = _request([{"productId": sample_product.id, "quantity": 1}], shipping_method={"id": "ca-S-CP"})
        with pytest.raises(ValidationError):
            await checkout_service.checkout(db_session, request)

    @pytest.mark.asyncio
    async def test_home_delivery_requires_address(self, db_session, sample_product, carrier):
        request = _request(
            [{"productId": sample_product.id, "quantity": 1}],
            shipping_method={"id": "ca-D-CP"},
            customer={"streetName": None, "city": ""},
        )
        with pytest.raises(ValidationError) as exc:
            await checkout_service.checkout(db_session, request)
        assert exc.value.details["missing"] == ["streetName", "city"]

    @pytest.mark.asyncio
    async def test_unknown_coupon(self, db_session, sample_product):
        request = _request([{"productId": sample_product.id, "quantity": 1}], couponCode="NOPE")
        with pytest.raises(NotFoundError):
            await checkout_service.checkout(db_session, request)

    @pytest.mark.asyncio
    async def test_unsupported_payment_method(self, db_session, sample_product):
        request = _request([{"productId": sample_product.id, "quantity": 1}], payment_method="bitcoin")
        with pytest.raises(ValidationError):
            await checkout_service.checkout(db_session, request)

    @pytest.mark.asyncio
    async def test_unknown_shipping_method(self, db_session, sample_product):
        request = _request([{"productId": sample_product.id, "quantity": 1}], shipping_method={"id": "drone"})
        with pytest.raises(ValidationError):
            await checkout_service.checkout(db_session, request)


class TestMercadoPagoCheckout:

    @pytest.mark.asyncio
    async def test_redirect_and_reservation(self, db_session, sample_product, mercadopago):
        request = _request(
            [{"productId": sample_product.id, "quantity": 2}],
            payment_method="mercadopago",
            shipping_method={"id": "express"},
        )
        result = await checkout_service.checkout(db_session, request)

        assert result["type"] == "redirect"
        assert result["initPoint"] == "https://mp.example/init/pref-123"
        assert result["orderId"].startswith("tmp_")
        assert result["total"] == 5000

        body = mercadopago.preference_bodies()[0]
        assert body["external_reference"] == result["orderId"]
        assert body["items"] == [
            {
                "id": "purchase_summary",
                "title": f"Compra en {settings.store_name}",
                "quantity": 1,
                "unit_price": 5000.0,
                "currency_id": "ARS",
            }
        ]
        assert body["metadata"]["items"] == [
            {"product_id": sample_product.id, "quantity": 2, "color": None, "size": None}
        ]
        assert body["metadata"]["province_code"] == "X"
        assert "notification_url" not in body

        reservations = (await db_session.execute(select(StockReservation))).scalars().all()
        assert [(r.session_id, r.quantity) for r in reservations] == [(result["orderId"], 2)]
        assert (await db_session.execute(select(Order))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_coupon_not_redeemed_before_payment(self, db_session, sample_product, sample_coupon, mercadopago):
        request = _request(
            [{"productId": sample_product.id, "quantity": 1}],
            payment_method="mercadopago",
            couponCode="VERANO10",
        )
        result = await checkout_service.checkout(db_session, request)
        assert result["discount"] == 100
        assert sample_coupon.used_count == 0
