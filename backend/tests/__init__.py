"""
Pytest test suite for the storefront backend.

Test categories:
- Unit tests: shipping rules, coupons, models, with no I/O
- Service tests: in-memory SQLite, carrier and MercadoPago behind httpx.MockTransport
- API tests: full FastAPI app through ASGITransport
"""
