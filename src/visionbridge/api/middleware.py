"""Bridge authentication.

Command routes accept a shared key as a Bearer token; the key comes from
``resolve_api_key`` so the host and ``HttpBridge`` agree on where it lives.
Liveness probes (``/health``) stay open.
"""

from __future__ import annotations

import logging
import secrets
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from visionbridge.config import resolve_api_key

if TYPE_CHECKING:
    from visionbridge.config import Settings

logger = logging.getLogger(__name__)

_bridge_bearer = HTTPBearer(auto_error=False, description="Shared bridge key")

BridgeCredentials = Annotated[HTTPAuthorizationCredentials | None, Depends(_bridge_bearer)]


def _expected_key(request: Request) -> str | None:
    settings: Settings = request.app.state.settings
    try:
        return resolve_api_key(settings)
    except OSError as exc:
        # Unreadable key file: command routes stay closed.
        logger.error("Cannot read bridge key file %s: %s", settings.api_key_file, exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Bridge key is not available",
        ) from exc


async def require_bridge_key(request: Request, credentials: BridgeCredentials) -> None:
    """Reject command calls that do not present the shared bridge key."""
    expected = _expected_key(request)
    if expected is None:
        return

    presented = credentials.credentials if credentials is not None else ""
    if secrets.compare_digest(presented.encode(), expected.encode()):
        return

    logger.warning("Rejected %s %s: %s bridge key", request.method, request.url.path, "wrong" if presented else "no")
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or missing API key",
        headers={"WWW-Authenticate": "Bearer"},
    )
