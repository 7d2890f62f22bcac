"""HTTP server for the Axiom authorization server.

Builds the FastAPI application (OAuth routers, permissive CORS, uniform
OAuth error rendering) and runs it under uvicorn for ``axiom serve``.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from axiom.api.oauth2.errors import InvalidRequest, OAuthError, ServerError

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Max-Age": "86400",
}


def _error_response(exc: OAuthError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=exc.headers,
    )


async def oauth_error_handler(request: Request, exc: OAuthError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.description)
    return _error_response(exc)


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return _error_response(InvalidRequest(str(exc.errors())))


async def cors_middleware(request: Request, call_next):
    """Answer preflights, attach CORS headers, map unexpected errors to 500.

    Every endpoint here is meant to be called cross-origin by third-party
    clients, so the origin is always ``*``.
    """
    if request.method == "OPTIONS":
        return Response(status_code=204, headers=CORS_HEADERS)

    try:
        response = await call_next(request)
    except Exception:
        logger.exception("Unhandled error in %s %s", request.method, request.url.path)
        response = _error_response(ServerError("Internal server error"))

    response.headers.update(CORS_HEADERS)
    return response


def create_api_app() -> FastAPI:
    """Build the FastAPI application."""
    from axiom import __version__
    from axiom.api.routes import mount_routers

    app = FastAPI(
        title="Axiom Authorization Server",
        description="OAuth 2.0 authorization code flow with PKCE and dynamic client registration.",
        version=__version__,
        docs_url="/oauth/docs",
        redoc_url=None,
        openapi_url="/oauth/openapi.json",
    )

    app.add_exception_handler(OAuthError, oauth_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.middleware("http")(cors_middleware)

    mount_routers(app)

    return app


def run_api_server(
    host: str = "127.0.0.1",
    port: int = 8090,
    dev: bool = False,
) -> None:
    """Start the authorization server."""
    import uvicorn

    logger.info("Axiom authorization server listening on http://%s:%d", host, port)
    logger.info("Discovery: http://%s:%d/.well-known/oauth-authorization-server", host, port)

    if dev:
        import pathlib

        src_dir = str(pathlib.Path(__file__).resolve().parent.parent)
        uvicorn.run(
            "axiom.api.serve:create_api_app",
            factory=True,
            host=host,
            port=port,
            reload=True,
            reload_dirs=[src_dir],
            reload_includes=["*.py"],
            log_level="debug",
        )
    else:
        app = create_api_app()
        uvicorn.run(app, host=host, port=port)
