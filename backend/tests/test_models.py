"""
Tests for Pydantic request/response models.

Tests: camelCase aliases on carrier payloads, storefront request validation.
"""
import pytest
from pydantic import ValidationError

from models import (
    CheckoutRequest,
    ImportShipmentResponse,
    PackageDimensions,
    ProductCreateRequest,
    RateRequest,
    RatesResponse,
    TrackingInfo,
)


class TestCarrierModels:
    """MiCorreo payloads are camelCase on the wire."""

    @pytest.mark.unit
    def test_python_name_construction_dumps_camel_case(self):
        request = RateRequest(
            customer_id="0001",
            postal_code_origin="1000",
            postal_code_destination="5000",
            dimensions=PackageDimensions(weight=500, height=10, width=20, length=30),
        )
        payload = request.to_payload()
        assert payload["postalCodeOrigin"] == "1000"
        assert payload["dimensions"] == {"weight": 500, "height": 10, "width": 20, "length": 30}
        assert "deliveredType" not in payload

    @pytest.mark.unit
    def test_rates_response_from_api_json(self):
        response = RatesResponse.model_validate(
            {
                "customerId": "0001",
                "validTo": "2026-12-31T00:00:00",
                "rates": [
                    {
                        "deliveredType": "S",
                        "productType": "CP",
                        "productName": "Clásico",
                        "price": 3900,
                        "deliveryTimeMin": "2",
                        "deliveryTimeMax": "5",
                    }
                ],
            }
        )
        assert response.rates[0].delivery_time_max == "5"
        assert response.rates[0].price == 3900.0

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "body,expected",
        [
            ({"trackingNumber": "TN1", "shipmentId": "S1"}, "TN1"),
            ({"shipmentId": "S1"}, "S1"),
            ({"id": "77"}, "77"),
            ({}, None),
        ],
    )
    def test_import_response_reference(self, body, expected):
        assert ImportShipmentResponse.model_validate(body).reference == expected

    @pytest.mark.unit
    def test_import_response_keeps_unknown_fields(self):
        response = ImportShipmentResponse.model_validate({"trackingNumber": "TN1", "label": "pdf"})
        assert response.model_dump()["label"] == "pdf"

    @pytest.mark.unit
    def test_tracking_events(self):
        info = TrackingInfo.model_validate(
            {"shippingId": "TN1", "events": [{"eventDate": "2026-10-01", "eventDescription": "En camino"}]}
        )
        assert info.events[0].event_description == "En camino"


class TestStorefrontModels:

    @pytest.mark.unit
    def test_checkout_request_aliases(self):
        request = CheckoutRequest.model_validate(
            {
                "items": [{"productId": 3, "quantity": 2, "color": "Rojo", "size": "M"}],
                "customer": {"name": "Ana", "email": "ana@example.com", "postalCode": "5000"},
                "paymentMethod": "mercadopago",
                "shippingMethod": {"id": "ca-S-CP"},
                "shippingAgencyCode": "X0001",
            }
        )
        assert request.items[0].product_id == 3
        assert request.customer.postal_code == "5000"
        assert request.shipping_method.id == "ca-S-CP"
        assert request.coupon_code is None

    @pytest.mark.unit
    def test_product_price_must_be_positive(self):
        with pytest.raises(ValidationError):
            ProductCreateRequest(name="Gorra", price=0)

    @pytest.mark.unit
    def test_product_python_names(self):
        request = ProductCreateRequest(name="Gorra", price=100, sale_price=80, on_sale=True)
        assert request.model_dump()["sale_price"] == 80
