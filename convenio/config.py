import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./convenio.db")

# MercadoPago Configuration
MP_ACCESS_TOKEN = os.getenv("MP_ACCESS_TOKEN")
MP_WEBHOOK_SECRET = os.getenv("MP_WEBHOOK_SECRET")
# "sandbox" or "production" - default to sandbox for safety
MP_ENVIRONMENT = os.getenv("MP_ENVIRONMENT", "sandbox")
MP_API_BASE_URL = os.getenv("MP_API_BASE_URL", "https://api.mercadopago.com")
MP_TIMEOUT_SECONDS = float(os.getenv("MP_TIMEOUT_SECONDS", "5"))

# Frontend base URL for checkout redirects
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
# Public base URL of this API, used for the gateway notification callback
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")

# Prices (BRL)
SUBSCRIPTION_PRICE = Decimal(os.getenv("SUBSCRIPTION_PRICE", "250.00"))
DEPENDENT_PRICE = Decimal(os.getenv("DEPENDENT_PRICE", "50.00"))
AGENDA_ACCESS_PRICE = Decimal(os.getenv("AGENDA_ACCESS_PRICE", "24.99"))
AGENDA_DEFAULT_DURATION_DAYS = int(os.getenv("AGENDA_DEFAULT_DURATION_DAYS", "30"))

# Webhook rate limit (requests per minute, global)
WEBHOOK_RATE_LIMIT = int(os.getenv("WEBHOOK_RATE_LIMIT", "100"))


def normalize_mp_environment(env: Optional[str]) -> str:
    """Normalize MercadoPago environment value to "sandbox" or "production" """
    value = (env or "sandbox").strip().lower()
    if value in {"live", "production", "prod"}:
        return "production"
    if value in {"test", "sandbox", "staging", "dev", "development"}:
        return "sandbox"
    logger.warning(f"Unknown MP environment '{env}', defaulting to sandbox")
    return "sandbox"


@dataclass(frozen=True)
class CheckoutSettings:
    """Checkout configuration resolved once per process and injected into the issuer"""

    frontend_url: str
    notification_url: str
    environment: str
    subscription_price: Decimal
    dependent_price: Decimal
    agenda_access_price: Decimal
    agenda_default_duration_days: int
    currency: str = "BRL"

    @property
    def is_sandbox(self) -> bool:
        return self.environment == "sandbox"

    def back_urls(self, purpose: str) -> dict:
        """Success/failure/pending redirect URLs for a payment purpose"""
        base = {
            "subscription": f"{self.frontend_url}/client?payment={{status}}",
            "dependent": f"{self.frontend_url}/client?payment={{status}}&type=dependent",
            "professional": f"{self.frontend_url}/professional?payment={{status}}",
            "agenda": f"{self.frontend_url}/professional?payment={{status}}&type=agenda",
        }[purpose]
        return {status: base.format(status=status) for status in ("success", "failure", "pending")}


@lru_cache
def get_checkout_settings() -> CheckoutSettings:
    settings = CheckoutSettings(
        frontend_url=FRONTEND_URL.rstrip("/"),
        notification_url=f"{API_BASE_URL.rstrip('/')}/api/webhook/mercadopago",
        environment=normalize_mp_environment(MP_ENVIRONMENT),
        subscription_price=SUBSCRIPTION_PRICE,
        dependent_price=DEPENDENT_PRICE,
        agenda_access_price=AGENDA_ACCESS_PRICE,
        agenda_default_duration_days=AGENDA_DEFAULT_DURATION_DAYS,
    )
    logger.info(
        f"Checkout settings resolved (env={settings.environment}, "
        f"notification_url={settings.notification_url})"
    )
    return settings
