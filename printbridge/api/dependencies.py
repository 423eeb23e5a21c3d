"""Dependency injection for FastAPI."""

import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from printbridge.services import BridgeServices


def get_services(request: Request) -> BridgeServices:
    """Get the services built at application startup.

    Args:
        request: FastAPI request object.

    Returns:
        BridgeServices: Process-wide services.
    """
    return request.app.state.services


Services = Annotated[BridgeServices, Depends(get_services)]


async def require_admin(
    services: Services,
    x_admin_key: Annotated[str | None, Header()] = None,
) -> None:
    """Check the admin key header.

    Raises:
        HTTPException: If admin access is not configured or the key is wrong.
    """
    expected = services.config.admin_key
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin access is not configured",
        )

    if not x_admin_key or not secrets.compare_digest(x_admin_key, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing X-Admin-Key header",
        )


AdminAccess = Depends(require_admin)
