"""Admin API authentication"""

import hmac
import logging
from typing import Optional

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

from biolink_api.core.config import settings

logger = logging.getLogger(__name__)

# Define API key header scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(api_key: Optional[str] = Security(api_key_header)) -> Optional[str]:
    """
    Verify API key from request header.

    Args:
        api_key: API key from X-API-Key header

    Returns:
        The validated API key, or None when no key is configured

    Raises:
        HTTPException: If API key is missing or invalid
    """
    # Check if API key is configured
    if not settings.api_key:
        logger.warning("API_KEY not configured in environment - admin authentication disabled")
        return None

    if not api_key:
        logger.warning("[ADMIN] Request missing X-API-Key header")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing API key. Please provide X-API-Key header.",
        )

    if not hmac.compare_digest(api_key.encode("utf-8"), settings.api_key.encode("utf-8")):
        logger.warning("[ADMIN] Invalid API key attempt")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return api_key
