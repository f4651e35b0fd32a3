"""Who may read bookings and watch a provider's booking feed.

Two kinds of key:
  - ADMIN_API_KEY              operator; sees every provider
  - PROVIDER_FEED_KEYS[pid]    one provider's own bookings and feed

Unknown or missing tokens get 401. With no keys configured at all the
views are open under DEBUG=true and closed (403) otherwise.

Counterparty login is handled upstream; these guards only cover the
booking listings and feeds.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Query, WebSocket, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from sessionbook.config import settings

log = logging.getLogger("sessionbook.auth")

_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class BookingAccess:
    """What a caller may see. ``provider_id=None`` means every provider."""

    provider_id: str | None = None

    @property
    def is_operator(self) -> bool:
        return self.provider_id is None

    def allows(self, provider_id: str) -> bool:
        return self.is_operator or provider_id == self.provider_id


def _matches(candidate: str, key: str) -> bool:
    return bool(key) and secrets.compare_digest(candidate.encode(), key.encode())


def resolve_access(token: str) -> BookingAccess | None:
    """Map a presented token to its scope, or None if it matches no key."""
    if _matches(token, settings.admin_api_key):
        return BookingAccess()
    found = None
    # No early exit: every key is compared.
    for provider_id, key in settings.provider_feed_keys.items():
        if _matches(token, key):
            found = BookingAccess(provider_id)
    return found


def _authorize(token: str) -> BookingAccess:
    if not settings.admin_api_key and not settings.provider_feed_keys:
        if settings.debug:
            return BookingAccess()
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No booking access keys configured. Set ADMIN_API_KEY in .env.",
        )

    access = resolve_access(token)
    if access is None:
        log.warning("Rejected booking access with missing or bad token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing access token.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return access


async def booking_access(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> BookingAccess:
    """FastAPI dependency: scope of the bearer token on an HTTP request."""
    return _authorize(credentials.credentials if credentials else "")


async def require_operator(access: BookingAccess = Depends(booking_access)) -> BookingAccess:
    """FastAPI dependency: only the operator key (or open debug mode) passes."""
    if not access.is_operator:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Key is scoped to provider {access.provider_id!r}.",
        )
    return access


async def feed_access(
    websocket: WebSocket,
    provider_id: str,
    token: str = Query(default=""),
) -> BookingAccess:
    """WebSocket auth for one provider's feed. Browsers can't send headers, so use ?token=."""
    try:
        access = _authorize(token)
        if not access.allows(provider_id):
            log.warning("Feed for %s refused to key scoped to %s", provider_id, access.provider_id)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Key is not valid for provider {provider_id!r}.",
            )
    except HTTPException as exc:
        await websocket.close(code=4000 + exc.status_code - 400, reason=str(exc.detail))
        raise
    return access
