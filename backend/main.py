"""
Storefront API — FastAPI Application

Catalog, coupons, checkout with MercadoPago or manual payment, the linear
order lifecycle, and Correo Argentino (MiCorreo) quotes, agencies and
shipment import.
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from domain.errors import DomainError
from domain.responses import ERROR_RESPONSES, error_body
from routes import auth, carrier, checkout, coupons, health, orders, payments, products, shipping

# ── Logging ─────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: validate settings, create DB tables. Shutdown: close the carrier client."""
    settings.validate_production_settings()

    from database import init_db
    await init_db()
    logger.info("Database initialized")

    if not settings.correo_argentino_configured:
        logger.warning("Correo Argentino credentials not set; carrier quotes and imports will fail")

    yield  # app runs here

    from services.correo_argentino import close_carrier_client
    await close_carrier_client()
    logger.info("Shutting down")


# ── App Factory ─────────────────────────────────────────────────────

app = FastAPI(
    title="Storefront API",
    description="E-commerce backend with MercadoPago payments and Correo Argentino shipping",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routes ──────────────────────────────────────────────────────────

app.include_router(health.router, responses=ERROR_RESPONSES)
app.include_router(auth.router, responses=ERROR_RESPONSES)
app.include_router(products.router, responses=ERROR_RESPONSES)
app.include_router(products.admin_router, responses=ERROR_RESPONSES)
app.include_router(coupons.router, responses=ERROR_RESPONSES)
app.include_router(coupons.admin_router, responses=ERROR_RESPONSES)
app.include_router(shipping.router, responses=ERROR_RESPONSES)
app.include_router(checkout.router, responses=ERROR_RESPONSES)
app.include_router(payments.router)
app.include_router(orders.router, responses=ERROR_RESPONSES)
app.include_router(orders.admin_router, responses=ERROR_RESPONSES)
app.include_router(carrier.admin_router, responses=ERROR_RESPONSES)


# ── Exception Handlers ──────────────────────────────────────────────


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """
    Catch-all for unhandled exceptions.

    Never return raw exception details to clients; the traceback is logged.
    """
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=error_body("internal_server_error", "Internal server error"),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc: StarletteHTTPException):
    """
    Standardize HTTPException responses for frontend consumers.

    Keeps the original HTTP status code, but wraps the payload.
    """
    headers = getattr(exc, "headers", None)
    if isinstance(exc, DomainError):
        error_code = exc.__class__.__name__.replace("Error", "").lower()
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(error_code, exc.message, exc.details),
            headers=headers,
        )

    detail = exc.detail
    message = detail if isinstance(detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body("http_error", message, detail if not isinstance(detail, str) else None),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request, exc: RequestValidationError):
    """Malformed request bodies / params → 400 in the standard envelope."""
    errors = [
        {"loc": list(e.get("loc", ())), "message": e.get("msg"), "type": e.get("type")}
        for e in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=error_body("validation", "Invalid request", {"errors": errors}),
    )


# ── Entrypoint ──────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")
