"""Admin gate for the certificate API.

Identity management lives in the platform in front of this service; it hands
the admin UI a shared bearer token. Every certificate route depends on
``require_admin``.
"""

from __future__ import annotations

import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.config import get_settings
from core.logger import get_logger
from core.wide_event import set_wide_event_fields

logger = get_logger(__name__)

_bearer = HTTPBearer(auto_error=False)


def require_admin(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)],
) -> str:
    """Raises 401 unless the request carries the admin bearer token."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        set_wide_event_fields(auth_error="missing_token")
        raise HTTPException(
            status_code=401,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )

    expected = get_settings().admin_api_token
    if not secrets.compare_digest(
        credentials.credentials.encode(), expected.encode()
    ):
        set_wide_event_fields(auth_error="invalid_token")
        logger.warning("auth.admin.rejected", path=request.url.path)
        raise HTTPException(
            status_code=401,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )

    request.state.admin = True
    set_wide_event_fields(admin=True)
    return "admin"
