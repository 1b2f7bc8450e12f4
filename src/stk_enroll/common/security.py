"""Admin API key dependency for the debug surface."""

import hmac

from fastapi import Header, HTTPException


async def require_admin_key(
    x_admin_api_key: str = Header("", alias="X-Admin-Api-Key"),
) -> str:
    """FastAPI dependency that gates admin-only routes.

    The routes answer 404 when no admin key is configured, so the debug
    surface does not exist on a default deployment.
    """
    from stk_enroll.common.config import get_settings

    settings = get_settings()
    if not settings.admin_api_key:
        raise HTTPException(status_code=404, detail="Not Found")
    if not hmac.compare_digest(x_admin_api_key.encode(), settings.admin_api_key.encode()):
        raise HTTPException(status_code=403, detail="Invalid admin API key")
    return x_admin_api_key
