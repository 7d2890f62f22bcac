# Identity (session) token verification for the approve step.
# Created: 2026-10-07
#
# Session tokens are HS256 JWTs issued by the app's auth collaborator. The
# signing key is per user: the user's token_key followed by the shared auth
# secret, so rotating one user's key invalidates only that user's sessions.

from __future__ import annotations

import logging
import time

import jwt

from axiom.api.oauth2.errors import Unauthorized
from axiom.api.oauth2.storage import OAuthStorageProtocol

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


def extract_bearer(authorization: str | None) -> str | None:
    """Return the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[7:].strip()
    return token or None


def create_identity_token(
    user_id: str,
    token_key: str,
    secret: str,
    ttl_seconds: int = 3600,
) -> str:
    """Issue a session token for *user_id*. Used by dev tooling and tests."""
    claims = {
        "id": user_id,
        "type": "auth",
        "exp": int(time.time()) + ttl_seconds,
    }
    return jwt.encode(claims, token_key + secret, algorithm=JWT_ALGORITHM)


class IdentityVerifier:
    """Resolve a session token to the user id it was issued for."""

    def __init__(self, storage: OAuthStorageProtocol, secret: str):
        self.storage = storage
        self.secret = secret

    def verify(self, token: str | None) -> str:
        """Return the verified user id or raise Unauthorized."""
        if not token:
            raise Unauthorized("Missing or invalid authorization header")

        try:
            claims = jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError as exc:
            logger.warning("Unparseable identity token: %s", exc)
            raise Unauthorized(f"Token validation error: {exc}") from exc

        user_id = claims.get("id")
        if not user_id or not isinstance(user_id, str):
            logger.warning("Identity token without user id")
            raise Unauthorized("Invalid authentication token - no user ID in claims")

        exp = claims.get("exp")
        if not isinstance(exp, (int, float)) or exp < time.time():
            logger.warning("Expired identity token for user %s", user_id)
            raise Unauthorized("Authentication token has expired")

        token_key = self.storage.get_user_token_key(user_id)
        if token_key is None:
            logger.warning("Identity token for unknown user %s", user_id)
            raise Unauthorized("User not found")

        try:
            jwt.decode(
                token,
                token_key + self.secret,
                algorithms=[JWT_ALGORITHM],
                options={"require": ["exp"], "verify_exp": True},
            )
        except jwt.InvalidTokenError as exc:
            logger.warning("Identity token verification failed for %s: %s", user_id, exc)
            raise Unauthorized(f"Token verification failed: {exc}") from exc

        return user_id
