# Discovery router: RFC 8414 authorization server metadata.
# Created: 2026-10-08

from __future__ import annotations

from fastapi import APIRouter, Request

from axiom.api.schemas.oauth2 import ServerMetadata

router = APIRouter(tags=["Discovery"])


def request_base_url(request: Request, fallback: str) -> str:
    """Origin the caller used to reach us, honoring reverse-proxy headers."""
    host = request.headers.get("x-forwarded-host") or request.headers.get("host")
    if not host:
        return fallback.rstrip("/")
    proto = request.headers.get("x-forwarded-proto") or "http"
    # Proxy chains may append comma-separated values; the first is the client's.
    proto = proto.split(",")[0].strip()
    host = host.split(",")[0].strip()
    return f"{proto}://{host}"


@router.get("/.well-known/oauth-authorization-server", response_model=ServerMetadata)
async def authorization_server_metadata(request: Request):
    from axiom.api.oauth2.server import get_oauth_server

    server = get_oauth_server()
    return server.metadata(request_base_url(request, server.settings.public_url))
