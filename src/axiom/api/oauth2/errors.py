# OAuth2 error taxonomy.
# Created: 2026-10-06
#
# Domain code raises these; axiom.api.serve renders them as
# {"error": ..., "error_description": ...} with the matching status code.

from __future__ import annotations

from typing import Any


class OAuthError(Exception):
    """Base class for protocol errors surfaced to OAuth callers."""

    error = "server_error"
    status_code = 400

    def __init__(
        self,
        description: str = "",
        headers: dict[str, str] | None = None,
        **extra: Any,
    ):
        super().__init__(description or self.error)
        self.description = description
        self.headers = headers
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "error": self.error,
            "error_description": self.description,
        }
        body.update(self.extra)
        return body


class InvalidRequest(OAuthError):
    error = "invalid_request"


class InvalidClient(OAuthError):
    error = "invalid_client"


class InvalidGrant(OAuthError):
    error = "invalid_grant"


class UnsupportedGrantType(OAuthError):
    error = "unsupported_grant_type"


class UnsupportedResponseType(OAuthError):
    error = "unsupported_response_type"


class InvalidClientMetadata(OAuthError):
    error = "invalid_redirect_uri"


class Unauthorized(OAuthError):
    error = "unauthorized"
    status_code = 401


class InvalidToken(OAuthError):
    error = "invalid_token"
    status_code = 401


class ClientNotFound(OAuthError):
    error = "client_not_found"
    status_code = 404


class SlowDown(OAuthError):
    error = "slow_down"
    status_code = 429


class ServerError(OAuthError):
    error = "server_error"
    status_code = 500
