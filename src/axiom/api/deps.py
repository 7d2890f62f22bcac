# Shared FastAPI dependencies for the API layer.
# Created: 2026-10-08

from __future__ import annotations

import asyncio

from fastapi import Request

from axiom.api.oauth2.errors import InvalidToken, SlowDown
from axiom.api.oauth2.identity import extract_bearer
from axiom.api.oauth2.models import ValidationResult


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def enforce_auth_rate_limit(request: Request) -> None:
    """Throttle anonymous OAuth endpoints per client IP."""
    from axiom.security.rate_limiter import get_auth_limiter

    info = get_auth_limiter().check(client_ip(request))
    if not info.allowed:
        raise SlowDown("Too many requests", headers=info.headers())


async def require_access_token(request: Request) -> ValidationResult:
    """FastAPI dependency that authenticates an OAuth bearer access token.

    Usage::

        @router.get("/me")
        async def me(auth: ValidationResult = Depends(require_access_token)): ...

    On success ``request.state.oauth_user_id`` holds the token owner.
    """
    from axiom.api.oauth2.server import get_oauth_server

    token = extract_bearer(request.headers.get("Authorization"))
    if token is None:
        raise InvalidToken("Missing or invalid authorization header")

    result = await asyncio.to_thread(get_oauth_server().validate_access_token, token)
    if not result.valid:
        raise InvalidToken("Invalid or expired access token")

    request.state.oauth_user_id = result.user_id
    return result
