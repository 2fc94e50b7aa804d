"""Access control for the admin sync endpoints.

A sync hits data.gov.in for up to ``max_pages`` requests and rewrites
every district document, so only holders of ``ADMIN_API_KEY`` may start
one or read its status.  The check is split in two:

- :func:`check_sync_key` decides, without touching FastAPI, whether a
  presented key may drive a sync.
- :func:`require_sync_admin` is the router dependency that turns a
  refusal into the matching HTTP error and logs it.
"""

from __future__ import annotations

import hmac
from enum import StrEnum

import structlog
from fastapi import HTTPException, Request, Security
from fastapi.security import APIKeyHeader

from config.settings import settings

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

ADMIN_KEY_HEADER = "X-Admin-API-Key"

_api_key_header = APIKeyHeader(name=ADMIN_KEY_HEADER, auto_error=False)


class SyncAccess(StrEnum):
    GRANTED = "granted"
    OPEN_DEV = "open_dev"  # no key configured, development only
    LOCKED = "locked"  # no key configured in production
    MISSING_KEY = "missing_key"
    WRONG_KEY = "wrong_key"


_REFUSALS: dict[SyncAccess, tuple[int, str]] = {
    SyncAccess.LOCKED: (503, "Sync administration is disabled: ADMIN_API_KEY is not set."),
    SyncAccess.MISSING_KEY: (401, f"Sync administration requires the {ADMIN_KEY_HEADER} header."),
    SyncAccess.WRONG_KEY: (403, "Invalid sync admin key."),
}


def check_sync_key(presented: str | None, configured: str, *, production: bool) -> SyncAccess:
    """Decide whether ``presented`` may trigger or inspect a sync."""
    if not configured:
        return SyncAccess.LOCKED if production else SyncAccess.OPEN_DEV
    if not presented:
        return SyncAccess.MISSING_KEY
    if hmac.compare_digest(presented.encode(), configured.encode()):
        return SyncAccess.GRANTED
    return SyncAccess.WRONG_KEY


async def require_sync_admin(
    request: Request,
    api_key: str | None = Security(_api_key_header),
) -> SyncAccess:
    """Router dependency guarding ``/admin/sync``.

    Returns the access decision on success; raises 401/403/503 otherwise.
    """
    access = check_sync_key(api_key, settings.admin_api_key, production=settings.is_production)

    if access is SyncAccess.OPEN_DEV:
        logger.warning("admin_sync.auth_open", path=request.url.path)
        return access
    if access is SyncAccess.GRANTED:
        return access

    status_code, detail = _REFUSALS[access]
    logger.warning(
        "admin_sync.auth_refused",
        reason=access.value,
        method=request.method,
        path=request.url.path,
        client_ip=request.client.host if request.client else "unknown",
    )
    headers = {"WWW-Authenticate": "ApiKey"} if status_code == 401 else None
    raise HTTPException(status_code=status_code, detail=detail, headers=headers)
