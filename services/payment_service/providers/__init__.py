from functools import lru_cache

from .base import PaymentProvider
from .paymob import PaymobProvider


@lru_cache
def get_payment_provider() -> PaymentProvider:
    """FastAPI dependency for the configured gateway. Override it in tests."""
    return PaymobProvider.from_settings()


__all__ = ["PaymentProvider", "PaymobProvider", "get_payment_provider"]
