# OAuth2 data models.
# Created: 2026-10-06

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class OAuthClient:
    """Dynamically registered OAuth2 client (RFC 7591)."""

    client_id: str
    client_name: str
    redirect_uris: list[str] = field(default_factory=list)
    grant_types: list[str] = field(default_factory=lambda: ["authorization_code"])
    response_types: list[str] = field(default_factory=lambda: ["code"])
    token_endpoint_auth_method: str = "none"  # public client, PKCE instead of a secret
    scope: str = "read"
    created_at: datetime = field(default_factory=utcnow)

    def public_info(self) -> dict:
        """Projection safe to show on a consent screen."""
        return {
            "client_id": self.client_id,
            "client_name": self.client_name or self.client_id,
        }

    def to_registration_response(self) -> dict:
        return {
            "client_id": self.client_id,
            "client_id_issued_at": int(self.created_at.timestamp()),
            "client_name": self.client_name,
            "redirect_uris": list(self.redirect_uris),
            "grant_types": list(self.grant_types),
            "response_types": list(self.response_types),
            "token_endpoint_auth_method": self.token_endpoint_auth_method,
            "scope": self.scope,
        }


@dataclass
class AuthorizationCode:
    """Short-lived, single-use authorization code."""

    code: str
    client_id: str
    user_id: str
    redirect_uri: str
    expires_at: datetime
    scope: str = ""
    code_challenge: str = ""
    code_challenge_method: str = ""  # "S256"; empty when no PKCE
    created_at: datetime = field(default_factory=utcnow)
    used: bool = False

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


@dataclass
class AccessToken:
    """Long-lived opaque bearer token bound to one user and one client."""

    token: str
    client_id: str
    user_id: str
    expires_at: datetime
    scope: str = "read"
    token_type: str = "Bearer"
    created_at: datetime = field(default_factory=utcnow)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


@dataclass
class ValidationResult:
    """Outcome of validating a bearer access token."""

    valid: bool
    user_id: str | None = None
    expires_at: datetime | None = None
    error: str | None = None

    @classmethod
    def invalid(cls, error: str = "invalid_token") -> ValidationResult:
        return cls(valid=False, error=error)
