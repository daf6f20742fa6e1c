"""
Correo Argentino MiCorreo API client.

Flow:
  1) POST /token with HTTP basic credentials -> {token, expires}
  2) Token is cached until `expires` and sent as a Bearer header
  3) Rates, agencies, shipment import, tracking and customer calls reuse it

There is no retry or backoff. A 401 drops the cached token so the next call
authenticates again. Every failure is logged and raised as CarrierError.
"""
import json
import logging
from datetime import datetime, timedelta
from typing import Any, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from config import settings
from domain.constants import (
    CARRIER_TOKEN_FALLBACK_HOURS,
    CORREO_ARGENTINO_PROD_URL,
    CORREO_ARGENTINO_TEST_URL,
    PROVINCES,
)
from domain.errors import CarrierError, ValidationError
from models import (
    Agency,
    CarrierCustomer,
    ImportShipmentRequest,
    ImportShipmentResponse,
    RateRequest,
    RatesResponse,
    RegisterUserRequest,
    TokenResponse,
    TrackingInfo,
)
from services import shipping_rules

logger = logging.getLogger(__name__)

AGENCY_SERVICES = ("package_reception", "pickup_availability")


def base_url_for(production: bool) -> str:
    return CORREO_ARGENTINO_PROD_URL if production else CORREO_ARGENTINO_TEST_URL


def parse_token_expiry(expires: Optional[str], now: Optional[datetime] = None) -> datetime:
    """
    Parse the token expiry ("YYYY-MM-DD HH:MM:SS" or ISO 8601).

    Falls back to now + 12h when the value is missing or unparseable.
    """
    now = now or datetime.now()
    if expires:
        for parse in (
            lambda v: datetime.strptime(v, "%Y-%m-%d %H:%M:%S"),
            datetime.fromisoformat,
        ):
            try:
                parsed = parse(expires.strip())
                # Compare in local naive time like the API's own format
                return parsed.astimezone().replace(tzinfo=None) if parsed.tzinfo else parsed
            except ValueError:
                continue
        logger.warning(f"Unparseable carrier token expiry {expires!r}; assuming {CARRIER_TOKEN_FALLBACK_HOURS}h")
    return now + timedelta(hours=CARRIER_TOKEN_FALLBACK_HOURS)


def _truncate(text: str, limit: int = 200) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def _response_body(response: httpx.Response) -> Any:
    """Decode a response body; JSON-encoded strings are decoded a second time."""
    try:
        body = response.json()
    except ValueError:
        body = response.text
    if isinstance(body, str) and body:
        try:
            return json.loads(body)
        except ValueError:
            logger.warning(f"Carrier response was a non-JSON string: {_truncate(body)}")
    return body


def _decode(model, data: Any, *, error_code: str, error_message: str):
    """Validate a carrier body into `model`; shapes it does not match raise CarrierError."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        logger.error(
            f"Unexpected Correo Argentino {model.__name__} body: "
            f"{_truncate(json.dumps(data, default=str))} ({e.error_count()} error(s))"
        )
        raise CarrierError(
            error_message,
            code=error_code,
            details={
                "response": data,
                "errors": [{"loc": list(err["loc"]), "message": err["msg"], "type": err["type"]} for err in e.errors()],
            },
        )


class CorreoArgentinoClient:
    """Async MiCorreo client holding one httpx connection pool and the bearer token."""

    def __init__(
        self,
        *,
        username: str,
        password: str,
        customer_id: str = "",
        production: bool = False,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.username = username
        self.password = password
        self.customer_id = customer_id
        self.production = production
        self._token: Optional[str] = None
        self._token_expires: Optional[datetime] = None
        self._http = httpx.AsyncClient(
            base_url=base_url_for(production),
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    @classmethod
    def from_settings(cls, transport: Optional[httpx.AsyncBaseTransport] = None) -> "CorreoArgentinoClient":
        return cls(
            username=settings.correo_argentino_username,
            password=settings.correo_argentino_password,
            customer_id=settings.correo_argentino_customer_id,
            production=settings.correo_argentino_production,
            timeout=settings.correo_argentino_timeout_seconds,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return str(self._http.base_url)

    # ── Auth ────────────────────────────────────────────────────────

    def is_authenticated(self) -> bool:
        return bool(self._token) and self._token_expires is not None and self._token_expires > datetime.now()

    def invalidate_token(self) -> None:
        self._token = None
        self._token_expires = None

    async def authenticate(self) -> str:
        """Return the cached token, or request a new one from POST /token."""
        if self.is_authenticated():
            return self._token

        logger.info("Authenticating with Correo Argentino")
        try:
            response = await self._http.post(
                "/token", json={}, auth=(self.username, self.password)
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            body = _truncate(e.response.text)
            logger.error(f"Correo Argentino authentication failed: {e.response.status_code} {body}")
            raise CarrierError(
                "Could not authenticate with Correo Argentino",
                code="AUTH_FAILED",
                details={"status": e.response.status_code},
            )
        except httpx.HTTPError as e:
            logger.error(f"Correo Argentino authentication failed: {e}")
            raise CarrierError("Could not authenticate with Correo Argentino", code="AUTH_FAILED")

        body = _response_body(response)
        token = (
            _decode(TokenResponse, body, error_code="AUTH_FAILED", error_message="Unexpected token response")
            if isinstance(body, dict)
            else TokenResponse()
        )
        if not token.token:
            logger.error("Correo Argentino returned no token")
            raise CarrierError("No token received from Correo Argentino", code="AUTH_FAILED")

        self._token = token.token
        self._token_expires = parse_token_expiry(token.expires)
        logger.info(f"Correo Argentino token valid until {self._token_expires:%Y-%m-%d %H:%M:%S}")
        return self._token

    async def ensure_auth(self) -> str:
        if not self.username or not self.password:
            raise CarrierError(
                "Correo Argentino credentials are not configured",
                code="NOT_CONFIGURED",
            )
        return await self.authenticate()

    # ── Transport ───────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        *,
        error_code: str,
        error_message: str,
        json_body: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> Any:
        token = await self.ensure_auth()
        try:
            response = await self._http.request(
                method,
                path,
                json=json_body,
                params=params,
                headers={"Authorization": f"Bearer {token}"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code == 401:
                self.invalidate_token()
            details = _response_body(e.response)
            logger.error(
                f"Correo Argentino {method} {path} failed: {status_code} "
                f"{_truncate(json.dumps(details, default=str) if not isinstance(details, str) else details)}"
            )
            raise CarrierError(
                error_message,
                code=error_code,
                details={"status": status_code, "response": details},
            )
        except httpx.HTTPError as e:
            logger.error(f"Correo Argentino {method} {path} failed: {e.__class__.__name__}: {e}")
            raise CarrierError(error_message, code=error_code)
        return _response_body(response)

    # ── Rates ───────────────────────────────────────────────────────

    async def get_rates(self, request: RateRequest) -> RatesResponse:
        """Validate, normalize to integer units and POST /rates."""
        if not request.customer_id:
            request = request.model_copy(update={"customer_id": self.customer_id})
        shipping_rules.validate_rate_request(request)

        payload = shipping_rules.build_rate_payload(request)
        data = await self._request(
            "POST",
            "/rates",
            json_body=payload,
            error_code="RATES_ERROR",
            error_message="Error calculating shipping rates",
        )
        return _decode(RatesResponse, data, error_code="RATES_ERROR", error_message="Unexpected rates response")

    # ── Agencies ────────────────────────────────────────────────────

    async def get_agencies(self, province_code: str, services: Optional[str] = None) -> list[Agency]:
        province_code = (province_code or "").upper()
        if province_code not in PROVINCES:
            raise ValidationError(f"Unknown province code: {province_code!r}", field="provinceCode")
        if services is not None and services not in AGENCY_SERVICES:
            raise ValidationError(f"Unknown agency service filter: {services!r}", field="services")

        params = {"customerId": self.customer_id, "provinceCode": province_code}
        if services:
            params["services"] = services
        data = await self._request(
            "GET",
            "/agencies",
            params=params,
            error_code="AGENCIES_ERROR",
            error_message="Error fetching agencies",
        )
        if not isinstance(data, (list, type(None))):
            raise CarrierError("Unexpected agencies response", code="AGENCIES_ERROR", details={"response": data})
        return [
            _decode(Agency, a, error_code="AGENCIES_ERROR", error_message="Unexpected agencies response")
            for a in (data or [])
        ]

    # ── Shipments ───────────────────────────────────────────────────

    async def import_shipment(self, request: ImportShipmentRequest) -> ImportShipmentResponse:
        """Validate by delivery type and POST /shipping/import."""
        if not request.customer_id:
            request = request.model_copy(update={"customer_id": self.customer_id})
        shipping_rules.validate_shipment_import(request)

        payload = shipping_rules.build_import_payload(request)
        logger.info(
            f"Importing shipment extOrderId={request.ext_order_id} "
            f"deliveryType={request.shipping.delivery_type}"
        )
        try:
            data = await self._request(
                "POST",
                "/shipping/import",
                json_body=payload,
                error_code="IMPORT_ERROR",
                error_message="Error importing shipment",
            )
        except CarrierError:
            logger.error(f"Shipment import payload: {_truncate(json.dumps(payload, default=str), 500)}")
            raise
        if not isinstance(data, dict):
            data = {}
        return _decode(
            ImportShipmentResponse, data, error_code="IMPORT_ERROR", error_message="Unexpected shipment import response"
        )

    async def get_tracking(self, shipping_id: str) -> list[TrackingInfo]:
        """GET /shipping/tracking; the API answers with one object or a list."""
        data = await self._request(
            "GET",
            "/shipping/tracking",
            params={"shippingId": shipping_id},
            error_code="TRACKING_ERROR",
            error_message="Error fetching tracking",
        )
        entries = data if isinstance(data, list) else [data]
        results = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            if "code" in entry and "message" in entry and "events" not in entry:
                raise CarrierError(
                    entry.get("message") or "Tracking not available",
                    code="TRACKING_ERROR",
                    details={"response": entry},
                )
            results.append(
                _decode(TrackingInfo, entry, error_code="TRACKING_ERROR", error_message="Unexpected tracking response")
            )
        return results

    # ── Customers ───────────────────────────────────────────────────

    async def validate_user(self, email: str, password: str) -> CarrierCustomer:
        data = await self._request(
            "POST",
            "/users/validate",
            json_body={"email": email, "password": password},
            error_code="USER_VALIDATION_FAILED",
            error_message="Error validating MiCorreo user",
        )
        return _decode(
            CarrierCustomer, data, error_code="USER_VALIDATION_FAILED", error_message="Unexpected MiCorreo user response"
        )

    async def register_user(self, request: RegisterUserRequest) -> CarrierCustomer:
        if request.document_type == "DNI" and (not request.last_name or request.address is None):
            raise ValidationError("DNI registrations require lastName and address")
        data = await self._request(
            "POST",
            "/register",
            json_body=request.to_payload(),
            error_code="REGISTER_FAILED",
            error_message="Error registering MiCorreo user",
        )
        return _decode(
            CarrierCustomer, data, error_code="REGISTER_FAILED", error_message="Unexpected MiCorreo register response"
        )

    async def close(self) -> None:
        await self._http.aclose()


# ── Process-wide client ─────────────────────────────────────────────

_client: Optional[CorreoArgentinoClient] = None


def get_carrier_client() -> CorreoArgentinoClient:
    """Lazily build the shared client from settings."""
    global _client
    if _client is None:
        _client = CorreoArgentinoClient.from_settings()
    return _client


def set_carrier_client(client: Optional[CorreoArgentinoClient]) -> None:
    """Replace the shared client (None resets to lazy construction)."""
    global _client
    _client = client


async def close_carrier_client() -> None:
    global _client
    if _client is not None:
        await _client.close()
        _client = None
