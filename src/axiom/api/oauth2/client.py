# Token validation client, used by resource servers to check bearer tokens.
# Created: 2026-10-08
#
# Calls POST /oauth/validate on the authorization server. Anything other than
# a 2xx response with valid=true is treated as unauthenticated: timeouts,
# transport errors and malformed bodies included. Results are not cached.

from __future__ import annotations

import logging
from datetime import datetime

import httpx

from axiom.api.oauth2.models import ValidationResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0


class TokenValidationClient:
    """Validate OAuth access tokens against a remote authorization server.

    Args:
        base_url: Authorization server origin, e.g. ``https://auth.example``.
        timeout: Seconds to wait before giving up (and rejecting the token).
        transport: Optional httpx transport, mainly for tests.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings=None, **kwargs) -> TokenValidationClient:
        """Client pointed at ``public_url`` with the configured timeout."""
        if settings is None:
            from axiom.config import get_settings

            settings = get_settings()
        return cls(settings.public_url, timeout=settings.validate_timeout_seconds, **kwargs)

    async def validate(self, token: str) -> ValidationResult:
        if not token:
            return ValidationResult.invalid()

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.post(
                    f"{self.base_url}/oauth/validate",
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.TimeoutException:
            logger.warning("OAuth token validation timed out after %.1fs", self.timeout)
            return ValidationResult.invalid("validation_timeout")
        except httpx.HTTPError as e:
            logger.warning("OAuth token validation failed: %s", e)
            return ValidationResult.invalid("validation_unavailable")

        if not resp.is_success:
            return ValidationResult.invalid()

        try:
            data = resp.json()
        except ValueError:
            logger.warning("OAuth validation returned a non-JSON body")
            return ValidationResult.invalid()

        if not isinstance(data, dict) or data.get("valid") is not True or not data.get("user_id"):
            return ValidationResult.invalid()

        expires_at = None
        if data.get("expires_at"):
            try:
                expires_at = datetime.fromisoformat(data["expires_at"])
            except (TypeError, ValueError):
                return ValidationResult.invalid()

        return ValidationResult(valid=True, user_id=str(data["user_id"]), expires_at=expires_at)
