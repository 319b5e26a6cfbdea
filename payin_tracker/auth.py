"""
Token-based authentication for the admin API.

- If API_TOKEN is not set, authentication is disabled (local development only)
- If API_TOKEN is set, endpoints that include `Depends(verify_api_token)` require it via X-API-Key
- No query param token support (prevents log/referrer leakage)

WARNING: If running with HOST=0.0.0.0, you MUST set API_TOKEN.
"""

from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader

from .config import Settings, get_settings


api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_token(
    api_key: Optional[str] = Depends(api_key_header),
    settings: Settings = Depends(get_settings),
) -> bool:
    """
    Verify API token if configured.

    Raises:
        HTTPException: 401 if the token is missing or wrong
    """
    if not settings.api_token:
        return True

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API token required. Provide via X-API-Key header.",
            headers={"WWW-Authenticate": "X-API-Key"},
        )

    if api_key != settings.api_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API token",
            headers={"WWW-Authenticate": "X-API-Key"},
        )

    return True
