# OAuth2 router: authorization, token, validation and registration endpoints.
# Created: 2026-10-08
#
# Handlers parse and validate the request, delegate to AuthorizationServer and
# let OAuthError propagate; axiom.api.serve renders errors uniformly. Server
# calls touch storage and the audit file, so they run in worker threads.

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, TypeVar

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, ValidationError

from axiom.api.deps import enforce_auth_rate_limit
from axiom.api.oauth2.errors import InvalidClientMetadata, InvalidRequest, InvalidToken
from axiom.api.oauth2.identity import extract_bearer
from axiom.api.schemas.oauth2 import (
    ApproveRequest,
    ApproveResponse,
    ClientInfoResponse,
    RegistrationRequest,
    RegistrationResponse,
    TokenRequest,
    TokenResponse,
    ValidateResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["OAuth2"])

M = TypeVar("M", bound=BaseModel)

_FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


async def _read_body(request: Request) -> dict[str, Any]:
    """Read a JSON or form-encoded body into a dict."""
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith(_FORM_TYPES):
            form = await request.form()
            return {k: v for k, v in form.items() if isinstance(v, str)}
        raw = await request.body()
        data = json.loads(raw) if raw.strip() else {}
    except (ValueError, UnicodeDecodeError) as exc:
        raise InvalidRequest("Invalid request body") from exc
    if not isinstance(data, dict):
        raise InvalidRequest("Request body must be an object")
    return data


def _describe(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}"
        for err in exc.errors()
    )


def _validate(model: type[M], data: dict[str, Any]) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise InvalidRequest(_describe(exc)) from exc


@router.get("/oauth/authorize", dependencies=[Depends(enforce_auth_rate_limit)])
async def authorize(
    client_id: str | None = None,
    redirect_uri: str | None = None,
    response_type: str | None = None,
    state: str = "",
    code_challenge: str = "",
    code_challenge_method: str = "",
    scope: str = "",
):
    """Validate the request and send the browser to the consent screen."""
    from axiom.api.oauth2.server import get_oauth_server

    consent_url = await asyncio.to_thread(
        get_oauth_server().initiate,
        client_id=client_id,
        redirect_uri=redirect_uri,
        response_type=response_type,
        state=state,
        code_challenge=code_challenge,
        code_challenge_method=code_challenge_method,
        scope=scope,
    )
    return RedirectResponse(consent_url, status_code=302)


@router.post(
    "/oauth/authorize",
    response_model=ApproveResponse,
    dependencies=[Depends(enforce_auth_rate_limit)],
)
async def approve(request: Request):
    """Issue an authorization code for the signed-in user (called by the consent screen)."""
    from axiom.api.oauth2.server import get_oauth_server

    server = get_oauth_server()
    # Authenticate before looking at the body.
    identity_token = extract_bearer(request.headers.get("Authorization"))
    user_id = await asyncio.to_thread(server.identity.verify, identity_token)

    body = _validate(ApproveRequest, await _read_body(request))
    redirect_url = await asyncio.to_thread(
        server.issue_code,
        user_id=user_id,
        client_id=body.client_id,
        redirect_uri=body.redirect_uri,
        state=body.state,
        code_challenge=body.code_challenge,
        code_challenge_method=body.code_challenge_method,
        scope=body.scope,
    )
    return ApproveResponse(redirect_url=redirect_url)


@router.post(
    "/oauth/token",
    response_model=TokenResponse,
    dependencies=[Depends(enforce_auth_rate_limit)],
)
async def token_exchange(request: Request):
    """Exchange an authorization code for an access token."""
    from axiom.api.oauth2.server import get_oauth_server

    body = _validate(TokenRequest, await _read_body(request))
    result = await asyncio.to_thread(
        get_oauth_server().exchange,
        grant_type=body.grant_type,
        code=body.code,
        redirect_uri=body.redirect_uri,
        client_id=body.client_id,
        code_verifier=body.code_verifier,
    )
    return JSONResponse(
        result,
        headers={"Cache-Control": "no-store", "Pragma": "no-cache"},
    )


@router.post("/oauth/validate", response_model=ValidateResponse)
async def validate_token(request: Request):
    """Validate a bearer access token (used by resource servers)."""
    from axiom.api.oauth2.server import get_oauth_server

    token = extract_bearer(request.headers.get("Authorization"))
    if token is None:
        raise InvalidToken("Missing or invalid authorization header", valid=False)

    result = await asyncio.to_thread(get_oauth_server().validate_access_token, token)
    if not result.valid:
        raise InvalidToken("Invalid or expired access token", valid=False)

    return ValidateResponse(
        valid=True,
        user_id=result.user_id,
        expires_at=result.expires_at.isoformat(),
    )


@router.post(
    "/oauth/register",
    status_code=201,
    response_model=RegistrationResponse,
    dependencies=[Depends(enforce_auth_rate_limit)],
)
async def register_client(request: Request):
    """Dynamic Client Registration (RFC 7591)."""
    from axiom.api.oauth2.server import get_oauth_server

    data = await _read_body(request)
    try:
        body = RegistrationRequest.model_validate(data)
    except ValidationError as exc:
        if any(err["loc"] and err["loc"][0] == "redirect_uris" for err in exc.errors()):
            raise InvalidClientMetadata("redirect_uris must be a list of URIs") from exc
        raise InvalidRequest(_describe(exc)) from exc

    client = await asyncio.to_thread(
        get_oauth_server().register_client,
        client_name=body.client_name,
        redirect_uris=body.redirect_uris,
        grant_types=body.grant_types,
        response_types=body.response_types,
        token_endpoint_auth_method=body.token_endpoint_auth_method,
        scope=body.scope,
    )
    return RegistrationResponse(**client.to_registration_response())


@router.get("/api/oauth/client-info/{client_id}", response_model=ClientInfoResponse)
async def client_info(client_id: str):
    """Public client name lookup for the consent screen."""
    from axiom.api.oauth2.server import get_oauth_server

    info = await asyncio.to_thread(get_oauth_server().client_info, client_id)
    return ClientInfoResponse(**info)
