# OAuth2 Authorization Server with PKCE and dynamic client registration.
# Created: 2026-10-07
#
# Implements the authorization code flow (RFC 6749 §4.1) with PKCE (RFC 7636),
# Dynamic Client Registration (RFC 7591) and server metadata (RFC 8414).
# Every method runs to completion against the injected storage; no request
# state is kept on the server object.

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import secrets
import string
from collections.abc import Callable
from datetime import datetime, timedelta
from urllib.parse import urlencode

from axiom.api.oauth2.errors import (
    ClientNotFound,
    InvalidClient,
    InvalidClientMetadata,
    InvalidGrant,
    InvalidRequest,
    ServerError,
    UnsupportedGrantType,
    UnsupportedResponseType,
)
from axiom.api.oauth2.identity import IdentityVerifier
from axiom.api.oauth2.models import (
    AccessToken,
    AuthorizationCode,
    OAuthClient,
    ValidationResult,
    utcnow,
)
from axiom.api.oauth2.redirects import (
    RedirectValidation,
    redirect_uris_match,
    validate_client,
)
from axiom.api.oauth2.storage import OAuthStorageProtocol
from axiom.config import Settings, get_auth_token_secret
from axiom.security.audit import AuditLogger, AuditSeverity

logger = logging.getLogger(__name__)

ALPHANUMERIC = string.ascii_letters + string.digits

CLIENT_ID_LENGTH = 32
CODE_LENGTH = 32
# Access tokens are exactly this long; resource servers use the length to
# tell OAuth bearer tokens apart from session tokens.
ACCESS_TOKEN_LENGTH = 48
TOKEN_SCOPE = "read"
SUPPORTED_CHALLENGE_METHODS = ("S256",)
_REGISTRATION_ATTEMPTS = 5


def random_string(length: int, alphabet: str = ALPHANUMERIC) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))


def s256_challenge(verifier: str) -> str:
    """BASE64URL(SHA256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def server_metadata(base_url: str) -> dict:
    """RFC 8414 authorization server metadata for *base_url*."""
    base_url = base_url.rstrip("/")
    return {
        "issuer": base_url,
        "authorization_endpoint": f"{base_url}/oauth/authorize",
        "token_endpoint": f"{base_url}/oauth/token",
        "registration_endpoint": f"{base_url}/oauth/register",
        "response_types_supported": ["code"],
        "grant_types_supported": ["authorization_code"],
        "code_challenge_methods_supported": list(SUPPORTED_CHALLENGE_METHODS),
        "token_endpoint_auth_methods_supported": ["none"],
    }


def _short(secret: str) -> str:
    return f"{secret[:6]}…"


class AuthorizationServer:
    """OAuth2 authorization server."""

    def __init__(
        self,
        storage: OAuthStorageProtocol,
        settings: Settings | None = None,
        audit: AuditLogger | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        if settings is None:
            from axiom.config import get_settings

            settings = get_settings()
        if audit is None:
            from axiom.security.audit import get_audit_logger

            audit = get_audit_logger()
        self.storage = storage
        self.settings = settings
        self.audit = audit
        self.clock = clock
        self.identity = IdentityVerifier(storage, get_auth_token_secret(settings))
        self.code_ttl = timedelta(seconds=settings.code_ttl_seconds)
        self.access_token_ttl = timedelta(days=settings.access_token_ttl_days)

    # -- client registry ---------------------------------------------------

    def register_client(
        self,
        client_name: str,
        redirect_uris: list[str],
        grant_types: list[str] | None = None,
        response_types: list[str] | None = None,
        token_endpoint_auth_method: str | None = None,
        scope: str | None = None,
    ) -> OAuthClient:
        """Create a client registration (RFC 7591)."""
        if not redirect_uris or not all(
            isinstance(uri, str) and uri.strip() for uri in redirect_uris
        ):
            raise InvalidClientMetadata("At least one redirect_uri is required")

        for _ in range(_REGISTRATION_ATTEMPTS):
            client = OAuthClient(
                client_id=random_string(CLIENT_ID_LENGTH),
                client_name=client_name or "",
                redirect_uris=list(redirect_uris),
                grant_types=list(grant_types or ["authorization_code"]),
                response_types=list(response_types or ["code"]),
                token_endpoint_auth_method=token_endpoint_auth_method or "none",
                scope=scope or TOKEN_SCOPE,
                created_at=self.clock(),
            )
            if self.storage.create_client(client):
                break
            logger.warning("client_id collision during registration, retrying")
        else:
            raise ServerError("Failed to store client registration")

        logger.info("OAuth client registered: %s (%s)", client.client_id, client.client_name)
        self.audit.log_oauth_event(
            action="client_registered",
            target=f"client:{client.client_id}",
            client_name=client.client_name,
            redirect_uris=client.redirect_uris,
        )
        return client

    def client_info(self, client_id: str) -> dict:
        """Public, non-sensitive projection of a registered client."""
        client = self.storage.get_client(client_id)
        if client is None:
            raise ClientNotFound("OAuth client not found", client_id=client_id)
        return client.public_info()

    def validate_client(self, client_id: str, redirect_uri: str) -> RedirectValidation:
        return validate_client(
            self.storage,
            client_id,
            redirect_uri,
            allow_unknown=self.settings.allow_unknown_clients,
        )

    def _require_valid_client(self, client_id: str, redirect_uri: str) -> None:
        validation = self.validate_client(client_id, redirect_uri)
        if not validation.valid:
            raise InvalidClient(validation.error or "Invalid client")

    # -- authorization endpoint ------------------------------------------

    def initiate(
        self,
        client_id: str | None,
        redirect_uri: str | None,
        response_type: str | None,
        state: str = "",
        code_challenge: str = "",
        code_challenge_method: str = "",
        scope: str = "",
    ) -> str:
        """Validate an authorization request and return the consent-screen URL.

        The consent screen later calls :meth:`approve` on behalf of the
        signed-in user with the same parameters.
        """
        if response_type != "code":
            raise UnsupportedResponseType("Only response_type=code is supported")
        if not client_id or not redirect_uri:
            raise InvalidRequest("Missing or invalid required parameters")

        self._require_valid_client(client_id, redirect_uri)

        params = {
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "response_type": response_type,
        }
        optional = {
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": code_challenge_method,
            "scope": scope,
        }
        params.update({k: v for k, v in optional.items() if v})
        return f"{self.settings.app_url.rstrip('/')}/oauth/authorize?{urlencode(params)}"

    def approve(
        self,
        identity_token: str | None,
        client_id: str | None,
        redirect_uri: str | None,
        state: str = "",
        code_challenge: str = "",
        code_challenge_method: str = "",
        scope: str = "",
    ) -> str:
        """Issue an authorization code for the signed-in user.

        Returns the client redirect URL carrying ``code`` (and ``state``). The
        caller performs the browser redirect.
        """
        user_id = self.identity.verify(identity_token)
        return self.issue_code(
            user_id=user_id,
            client_id=client_id,
            redirect_uri=redirect_uri,
            state=state,
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
            scope=scope,
        )

    def issue_code(
        self,
        user_id: str,
        client_id: str | None,
        redirect_uri: str | None,
        state: str = "",
        code_challenge: str = "",
        code_challenge_method: str = "",
        scope: str = "",
    ) -> str:
        """Issue a code for an already authenticated *user_id*."""
        if not client_id or not redirect_uri:
            raise InvalidRequest("Missing required parameters")

        self._require_valid_client(client_id, redirect_uri)

        if code_challenge:
            code_challenge_method = code_challenge_method or "S256"
            if code_challenge_method not in SUPPORTED_CHALLENGE_METHODS:
                raise InvalidRequest(
                    f"Unsupported code_challenge_method: {code_challenge_method}"
                )
        else:
            code_challenge_method = ""

        now = self.clock()
        auth_code = AuthorizationCode(
            code=random_string(CODE_LENGTH),
            client_id=client_id,
            user_id=user_id,
            redirect_uri=redirect_uri,
            expires_at=now + self.code_ttl,
            scope=scope,
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
            created_at=now,
        )
        self.storage.store_code(auth_code)

        logger.info("Authorization approved for user %s, client %s", user_id, client_id)
        self.audit.log_oauth_event(
            action="code_issued",
            target=f"client:{client_id}",
            actor=user_id,
            code=_short(auth_code.code),
            pkce=bool(code_challenge),
        )

        params = {"code": auth_code.code}
        if state:
            params["state"] = state
        separator = "&" if "?" in redirect_uri else "?"
        return f"{redirect_uri}{separator}{urlencode(params)}"

    # -- token endpoint --------------------------------------------------

    def exchange(
        self,
        grant_type: str | None,
        code: str | None,
        redirect_uri: str | None,
        client_id: str | None,
        code_verifier: str | None = None,
    ) -> dict:
        """Redeem an authorization code for an access token, exactly once."""
        if grant_type != "authorization_code":
            logger.warning("Unsupported grant type: %s", grant_type)
            raise UnsupportedGrantType("Only authorization_code grant type is supported")
        if not code or not redirect_uri or not client_id:
            raise InvalidRequest("Missing required parameters")

        auth_code = self.storage.get_unused_code(code)
        if auth_code is None:
            logger.warning("Unknown or already used authorization code %s", _short(code))
            raise InvalidGrant("Invalid or expired authorization code")

        if auth_code.client_id != client_id or not redirect_uris_match(
            auth_code.redirect_uri, redirect_uri
        ):
            logger.warning("Client ID or redirect URI mismatch in token exchange")
            raise InvalidGrant("Client ID or redirect URI mismatch")

        self._require_valid_client(client_id, redirect_uri)

        now = self.clock()
        if auth_code.is_expired(now):
            logger.warning("Expired authorization code %s", _short(code))
            raise InvalidGrant("Authorization code expired")

        if auth_code.code_challenge:
            self._verify_pkce(auth_code, code_verifier)

        if not self.storage.mark_code_used(code):
            logger.warning("Authorization code %s redeemed concurrently", _short(code))
            self.audit.log_oauth_event(
                action="code_replay",
                target=f"client:{client_id}",
                actor=auth_code.user_id,
                severity=AuditSeverity.WARNING,
                status="block",
                code=_short(code),
            )
            raise InvalidGrant("Invalid or expired authorization code")

        token = AccessToken(
            token=random_string(ACCESS_TOKEN_LENGTH),
            client_id=client_id,
            user_id=auth_code.user_id,
            expires_at=now + self.access_token_ttl,
            scope=TOKEN_SCOPE,
            created_at=now,
        )
        self.storage.store_token(token)

        logger.info("Access token issued for user %s, client %s", token.user_id, client_id)
        self.audit.log_oauth_event(
            action="token_issued",
            target=f"client:{client_id}",
            actor=token.user_id,
            token=_short(token.token),
        )

        return {
            "access_token": token.token,
            "token_type": token.token_type,
            "expires_in": int(self.access_token_ttl.total_seconds()),
            "scope": token.scope,
        }

    def _verify_pkce(self, auth_code: AuthorizationCode, code_verifier: str | None) -> None:
        if not code_verifier:
            raise InvalidGrant("code_verifier is required for this authorization code")
        try:
            computed = s256_challenge(code_verifier)
        except UnicodeEncodeError as exc:
            raise InvalidGrant("code_verifier must be ASCII") from exc
        if not hmac.compare_digest(computed, auth_code.code_challenge):
            logger.warning("PKCE verification failed for client %s", auth_code.client_id)
            raise InvalidGrant("PKCE verification failed")

    # -- token validation ------------------------------------------------

    def validate_access_token(self, token: str | None) -> ValidationResult:
        """Resolve a bearer access token to its user.

        Unknown and expired tokens produce the same result.
        """
        if not token or len(token) != ACCESS_TOKEN_LENGTH:
            return ValidationResult.invalid()
        record = self.storage.get_token(token)
        if record is None or not hmac.compare_digest(record.token, token):
            return ValidationResult.invalid()
        if record.is_expired(self.clock()):
            logger.debug("Expired access token for user %s", record.user_id)
            return ValidationResult.invalid()
        return ValidationResult(valid=True, user_id=record.user_id, expires_at=record.expires_at)

    def metadata(self, base_url: str | None = None) -> dict:
        return server_metadata(base_url or self.settings.public_url)


# Singleton
_server: AuthorizationServer | None = None


def get_oauth_server() -> AuthorizationServer:
    global _server
    if _server is None:
        from axiom.api.oauth2.storage import MemoryOAuthStorage, SqliteOAuthStorage
        from axiom.config import get_settings

        settings = get_settings()
        if settings.storage_backend == "memory":
            storage = MemoryOAuthStorage()
        else:
            storage = SqliteOAuthStorage()
        _server = AuthorizationServer(storage, settings=settings)
    return _server


def reset_oauth_server() -> None:
    global _server
    _server = None
