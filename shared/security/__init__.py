from .jwt_handler import create_access_token, verify_access_token
from .api_key import verify_api_key
from .dependencies import get_current_customer, verify_internal_api_key

__all__ = [
    "create_access_token",
    "verify_access_token",
    "verify_api_key",
    "get_current_customer",
    "verify_internal_api_key",
]
