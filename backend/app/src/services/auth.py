"""Bearer-token authorization for the admin endpoints."""

import hmac
import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from configs import Settings, get_settings

logger = logging.getLogger("admin.auth")


class AdminAuthorizer:
    """Accept ``Authorization: Bearer <token>`` matching the admin token.

    With no admin token configured every request is denied.
    """

    def __init__(self, admin_token: Optional[str]) -> None:
        self.admin_token = admin_token or ""

    def is_authorized(self, request: Request) -> bool:
        if not self.admin_token:
            return False

        header = request.headers.get("authorization", "")
        scheme, _, presented = header.partition(" ")
        if scheme.lower() != "bearer" or not presented:
            return False

        return hmac.compare_digest(
            presented.strip().encode("utf-8"), self.admin_token.encode("utf-8")
        )


def get_admin_authorizer(settings: Settings = Depends(get_settings)) -> AdminAuthorizer:
    return AdminAuthorizer(settings.ADMIN_API_TOKEN)


def require_admin(
    request: Request, authorizer: AdminAuthorizer = Depends(get_admin_authorizer)
) -> None:
    """FastAPI dependency rejecting non-admin callers with 401."""
    if not authorizer.is_authorized(request):
        logger.warning("Unauthorized admin call to %s", request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
