"""
Configuration management for the storefront backend.

Loads settings from .env via pydantic-settings.

Notes:
    - Correo Argentino credentials are optional; without them only the
      zone-table shipping options are available.
    - validate_production_settings() enforces strict CORS and admin auth
      in production.
"""
import logging

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"
    app_url: str = "http://localhost:3000"

    # ── Database ────────────────────────────────────────────────────
    database_url: str = "sqlite:///./data/storefront.db"

    # ── Admin Auth (JWT) ────────────────────────────────────────────
    jwt_secret: str = ""
    jwt_issuer: str = "storefront-api"
    jwt_access_ttl_minutes: int = 60
    admin_email: str = ""
    admin_password: str = ""

    # ── Correo Argentino (MiCorreo) ─────────────────────────────────
    correo_argentino_username: str = ""
    correo_argentino_password: str = ""
    correo_argentino_customer_id: str = ""
    correo_argentino_production: bool = False
    correo_argentino_timeout_seconds: float = 30.0

    # ── Store / shipment sender ─────────────────────────────────────
    store_name: str = "Rastuci E-commerce"
    store_phone: str = ""
    store_email: str = "ventas@rastuci.com"
    store_street_name: str = "Av. San Martín"
    store_street_number: str = "1234"
    store_city: str = "Don Torcuato"
    store_province_code: str = "B"
    store_postal_code: str = "1611"

    # ── MercadoPago ─────────────────────────────────────────────────
    mercadopago_access_token: str = ""
    mercadopago_webhook_secret: str = ""
    mercadopago_webhook_url: str = ""
    mercadopago_api_base: str = "https://api.mercadopago.com"

    # ── Email (Resend) ──────────────────────────────────────────────
    resend_api_key: str = ""
    email_from: str = "Rastuci <no-reply@rastuci.com>"

    # ── Checkout ────────────────────────────────────────────────────
    currency: str = "ARS"
    stock_reservation_minutes: int = 15
    checkout_rate_limit: int = 10          # requests per window per IP
    checkout_rate_window_seconds: int = 60

    # ── CORS ────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # allow unknown .env keys without crashing
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def correo_argentino_configured(self) -> bool:
        return bool(
            self.correo_argentino_username
            and self.correo_argentino_password
            and self.correo_argentino_customer_id
        )

    def validate_production_settings(self):
        """
        Validate settings for production safety.

        Called during app startup.
        """
        if self.environment == "production":
            if "*" in self.cors_origins:
                raise ValueError(
                    "CORS_ORIGINS must not contain '*' in production. "
                    "Set explicit allowed origins."
                )
            if not self.jwt_secret:
                raise ValueError(
                    "JWT_SECRET must be set in production. "
                    "It is used to sign admin access tokens."
                )
            if not self.admin_email or not self.admin_password:
                raise ValueError(
                    "ADMIN_EMAIL and ADMIN_PASSWORD must be set in production."
                )
            if self.mercadopago_access_token and not self.mercadopago_webhook_secret:
                raise ValueError(
                    "MERCADOPAGO_WEBHOOK_SECRET must be set when MercadoPago is enabled. "
                    "Unsigned webhooks are rejected."
                )
            logger.info("Production settings validated")
        else:
            warnings = []
            if "*" in self.cors_origins:
                warnings.append("CORS_ORIGINS contains '*' (open access)")
            if not self.correo_argentino_configured:
                warnings.append("Correo Argentino credentials missing (zone-table shipping only)")
            if not self.correo_argentino_production:
                warnings.append("Correo Argentino is using the test environment")
            for w in warnings:
                logger.warning(w)


# Global settings instance
settings = Settings()
