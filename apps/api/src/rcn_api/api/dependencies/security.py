from fastapi import Header, HTTPException, status

from rcn_api.core.settings import settings


async def require_shop_api_key(x_api_key: str = Header("", alias="X-API-Key")) -> None:
    if not settings.shop_api_key:
        return

    if x_api_key != settings.shop_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )
