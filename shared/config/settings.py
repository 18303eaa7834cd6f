"""
Environment-driven settings shared by every service.

Secrets fall back to loud development defaults instead of crashing at import
time, the same way the internal API key always has.
"""
import os
import warnings

from dotenv import load_dotenv

load_dotenv()


def _secret(name: str, default: str) -> str:
    value = os.getenv(name, "")
    if not value:
        warnings.warn(
            f"{name} is not set. Using an insecure default. Set this env var in production!",
            stacklevel=2,
        )
        value = default
    return value


STORE_CURRENCY: str = os.getenv("STORE_CURRENCY", "EGP")

JWT_SECRET_KEY: str = _secret("JWT_SECRET_KEY", "insecure-jwt-secret-change-me")
INTERNAL_API_KEY: str = _secret("INTERNAL_API_KEY", "insecure-default-change-me")

PAYMOB_BASE_URL: str = os.getenv("PAYMOB_BASE_URL", "https://accept.paymob.com/api")
PAYMOB_API_KEY: str = os.getenv("PAYMOB_API_KEY", "")
PAYMOB_HMAC_SECRET: str = _secret("PAYMOB_HMAC_SECRET", "insecure-webhook-secret-change-me")
PAYMOB_IFRAME_ID: int = int(os.getenv("PAYMOB_IFRAME_ID", "0"))
PAYMOB_CARD_INTEGRATION_ID: int = int(os.getenv("PAYMOB_CARD_INTEGRATION_ID", "0"))
PAYMOB_WALLET_INTEGRATION_ID: int = int(os.getenv("PAYMOB_WALLET_INTEGRATION_ID", "0"))

# Tracing is exported only when a collector is configured
OTLP_ENDPOINT: str | None = os.getenv("OTLP_ENDPOINT") or None
