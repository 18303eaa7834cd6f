from fastapi import Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordBearer, APIKeyHeader
from .jwt_handler import verify_access_token
from .api_key import verify_api_key

# Customer tokens are issued by the storefront auth service (Bearer <token>)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)

# Staff tools and couriers call with the internal key
api_key_header = APIKeyHeader(name="X-Internal-API-Key", auto_error=False)


async def get_current_customer(request: Request, token: str = Depends(oauth2_scheme)) -> str:
    """Dependency to validate the customer JWT and return the customer id (sub)."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not token:
        raise credentials_exception

    payload = verify_access_token(token)
    if payload is None:
        raise credentials_exception

    customer_id: str = payload.get("sub")
    if customer_id is None:
        raise credentials_exception

    request.state.customer_id = customer_id
    return customer_id


async def verify_internal_api_key(api_key: str = Depends(api_key_header)) -> bool:
    """Dependency to validate staff and service-to-service requests."""
    if not verify_api_key(api_key):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing X-Internal-API-Key header"
        )
    return True
