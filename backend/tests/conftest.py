"""
Pytest configuration and shared fixtures for the storefront tests.

Provides an in-memory SQLite session, an ASGI HTTP client bound to it, an
admin token, and httpx MockTransport fakes for Correo Argentino and
MercadoPago.
"""
import json
import pytest
from typing import AsyncGenerator

import httpx
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from database import Base, get_db
from config import settings

# ── Test Configuration ───────────────────────────────────────────────
# Test-only values for settings that would normally come from .env
settings.jwt_secret = "test-jwt-secret-for-pytest-only"
settings.admin_email = "admin@example.com"
settings.admin_password = "correct-horse"
settings.mercadopago_access_token = "TEST-access-token"
settings.mercadopago_webhook_secret = "test-webhook-secret"
settings.mercadopago_webhook_url = ""
settings.resend_api_key = ""
settings.correo_argentino_username = "user"
settings.correo_argentino_password = "pass"
settings.correo_argentino_customer_id = "0001234567"
settings.correo_argentino_production = False


# ── Database Fixtures ────────────────────────────────────────────────


@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create an in-memory SQLite database session for each test.

    Uses StaticPool to allow in-memory SQLite with async SQLAlchemy.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session

    await engine.dispose()


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    from middleware.rate_limit import get_limiter

    get_limiter().reset()
    yield
    get_limiter().reset()


@pytest.fixture(scope="function")
async def api_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """ASGI client with get_db overridden to the test session."""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict:
    from middleware.auth import issue_access_token

    token = issue_access_token(subject=settings.admin_email)
    return {"Authorization": f"Bearer {token}"}


# ── Correo Argentino fake ────────────────────────────────────────────


class FakeCarrierAPI:
    """
    Scripted MiCorreo API behind an httpx.MockTransport.

    `responses[(method, path)]` is a (status, body) tuple or a callable
    taking the request. Every request is recorded in `calls`.
    """

    def __init__(self):
        self.calls: list[httpx.Request] = []
        self.responses: dict = {
            ("POST", "/token"): (200, {"token": "tok-1", "expires": "2099-01-01 00:00:00"}),
        }

    def set(self, method: str, path: str, status: int, body=None):
        self.responses[(method, path)] = (status, body)

    def calls_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.calls if r.url.path.endswith(path)]

    def json_of(self, request: httpx.Request):
        return json.loads(request.content) if request.content else None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        # base URL carries a /micorreo/v1 prefix
        path = "/" + request.url.path.split("/v1/", 1)[-1] if "/v1/" in request.url.path else request.url.path
        entry = self.responses.get((request.method, path))
        if entry is None:
            return httpx.Response(404, json={"message": f"no fake for {request.method} {path}"})
        if callable(entry):
            return entry(request)
        status, body = entry
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)


@pytest.fixture
async def carrier():
    """Install a CorreoArgentinoClient wired to FakeCarrierAPI as the shared client."""
    from services.correo_argentino import CorreoArgentinoClient, set_carrier_client

    fake = FakeCarrierAPI()
    client = CorreoArgentinoClient(
        username=settings.correo_argentino_username,
        password=settings.correo_argentino_password,
        customer_id=settings.correo_argentino_customer_id,
        transport=httpx.MockTransport(fake.handler),
    )
    fake.client = client
    set_carrier_client(client)
    yield fake
    set_carrier_client(None)
    await client.close()


# ── MercadoPago fake ─────────────────────────────────────────────────


class FakeMercadoPago:
    def __init__(self):
        self.calls: list[httpx.Request] = []
        self.payments: dict[str, dict] = {}
        self.preference_status = 201

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = request.url.path
        if request.method == "POST" and path == "/checkout/preferences":
            if self.preference_status >= 400:
                return httpx.Response(self.preference_status, json={"message": "bad request"})
            return httpx.Response(
                201,
                json={
                    "id": "pref-123",
                    "init_point": "https://mp.example/init/pref-123",
                    "sandbox_init_point": "https://sandbox.mp.example/init/pref-123",
                },
            )
        if request.method == "GET" and path.startswith("/v1/payments/"):
            payment_id = path.rsplit("/", 1)[-1]
            if payment_id in self.payments:
                return httpx.Response(200, json=self.payments[payment_id])
            return httpx.Response(404, json={"message": "not found"})
        return httpx.Response(404)

    def preference_bodies(self) -> list[dict]:
        return [
            json.loads(r.content) for r in self.calls
            if r.method == "POST" and r.url.path == "/checkout/preferences"
        ]


@pytest.fixture
def mercadopago(monkeypatch):
    from services import mercadopago_service

    fake = FakeMercadoPago()

    def _client():
        return httpx.AsyncClient(
            base_url=settings.mercadopago_api_base,
            transport=httpx.MockTransport(fake.handler),
        )

    monkeypatch.setattr(mercadopago_service, "_http_client", _client)
    return fake


@pytest.fixture
def sent_emails(monkeypatch):
    """Capture outgoing email instead of calling Resend."""
    from services import notification_service

    sent = []

    async def _send(*, to, subject, html):
        sent.append({"to": to, "subject": subject, "html": html})
        return True

    monkeypatch.setattr(notification_service, "send_email", _send)
    return sent


# ── Test Data Fixtures ────────────────────────────────────────────────


@pytest.fixture
async def sample_category(db_session: AsyncSession):
    from db_models import Category

    category = Category(name="Remeras", description="Remeras de algodón")
    db_session.add(category)
    await db_session.commit()
    await db_session.refresh(category)
    return category


@pytest.fixture
async def sample_product(db_session: AsyncSession, sample_category):
    from db_models import Product

    product = Product(
        name="Remera básica",
        description="Algodón peinado",
        category_id=sample_category.id,
        price=1000.0,
        stock=10,
        active=True,
    )
    db_session.add(product)
    await db_session.commit()
    await db_session.refresh(product)
    return product


@pytest.fixture
async def variant_product(db_session: AsyncSession, sample_category):
    """Product with two color/size variants (3 + 2 units)."""
    from db_models import Product, ProductVariant

    product = Product(name="Buzo", category_id=sample_category.id, price=5000.0, stock=5, active=True)
    db_session.add(product)
    await db_session.flush()
    db_session.add_all(
        [
            ProductVariant(product_id=product.id, color="Rojo", size="M", stock=3),
            ProductVariant(product_id=product.id, color="Azul", size="L", stock=2),
        ]
    )
    await db_session.commit()
    await db_session.refresh(product)
    return product


@pytest.fixture
async def sample_coupon(db_session: AsyncSession):
    from db_models import Coupon

    coupon = Coupon(
        code="VERANO10",
        discount_type="PERCENTAGE",
        value=10,
        min_order_value=500,
        max_uses=5,
        used_count=0,
        active=True,
    )
    db_session.add(coupon)
    await db_session.commit()
    await db_session.refresh(coupon)
    return coupon
