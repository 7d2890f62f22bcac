# OAuth2 schemas.
# Created: 2026-10-07

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ApproveRequest(BaseModel):
    """Consent-screen approval (POST /oauth/authorize)."""

    model_config = ConfigDict(extra="forbid")

    client_id: str = ""
    redirect_uri: str = ""
    response_type: str = ""  # echoed from the consent URL, not used
    state: str = ""
    code_challenge: str = ""
    code_challenge_method: str = ""
    scope: str = ""


class ApproveResponse(BaseModel):
    redirect_url: str


class TokenRequest(BaseModel):
    """Authorization code exchange.

    Presence of the individual fields is checked by the authorization server
    so that an unsupported grant_type is reported before missing parameters.
    Unknown parameters are ignored (RFC 6749 §3.2).
    """

    model_config = ConfigDict(extra="ignore")

    grant_type: str | None = None
    code: str | None = None
    redirect_uri: str | None = None
    client_id: str | None = None
    code_verifier: str | None = None


class TokenResponse(BaseModel):
    """OAuth2 token response."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    scope: str


class ValidateResponse(BaseModel):
    valid: bool
    user_id: str
    expires_at: str


class RegistrationRequest(BaseModel):
    """Dynamic client registration request (RFC 7591)."""

    model_config = ConfigDict(extra="ignore")

    client_name: str = ""
    redirect_uris: list[str] = Field(default_factory=list)
    grant_types: list[str] | None = None
    response_types: list[str] | None = None
    token_endpoint_auth_method: str | None = None
    scope: str | None = None


class RegistrationResponse(BaseModel):
    client_id: str
    client_id_issued_at: int
    client_name: str
    redirect_uris: list[str]
    grant_types: list[str]
    response_types: list[str]
    token_endpoint_auth_method: str
    scope: str


class ClientInfoResponse(BaseModel):
    client_id: str
    client_name: str


class OAuthErrorResponse(BaseModel):
    error: str
    error_description: str = ""


class ServerMetadata(BaseModel):
    """RFC 8414 authorization server metadata."""

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    registration_endpoint: str
    response_types_supported: list[str]
    grant_types_supported: list[str]
    code_challenge_methods_supported: list[str]
    token_endpoint_auth_methods_supported: list[str]
