import secrets

from fastapi import Header, HTTPException, status
from loguru import logger

from holyloy_api.core.settings import settings


async def require_rewards_api_key(x_api_key: str = Header("", alias="X-API-Key")) -> None:
    """Guard operator endpoints; open when no rewards API key is configured."""

    expected = settings.rewards_api_key
    if not expected:
        return

    if not secrets.compare_digest(x_api_key.encode(), expected.encode()):
        logger.warning("Rejected rewards API request with invalid key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )
