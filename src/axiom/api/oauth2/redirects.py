# Redirect URI / client validation.
# Created: 2026-10-06

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import unquote

from axiom.api.oauth2.storage import OAuthStorageProtocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RedirectValidation:
    valid: bool
    error: str | None = None


def normalize_redirect_uri(uri: str) -> str:
    """Percent-decode, drop one trailing slash, lowercase."""
    try:
        decoded = unquote(str(uri), errors="strict")
    except UnicodeDecodeError:
        decoded = str(uri)
    if decoded.endswith("/"):
        decoded = decoded[:-1]
    return decoded.lower()


def redirect_uris_match(a: str, b: str) -> bool:
    return normalize_redirect_uri(a) == normalize_redirect_uri(b)


def validate_client(
    storage: OAuthStorageProtocol,
    client_id: str,
    redirect_uri: str,
    allow_unknown: bool = True,
) -> RedirectValidation:
    """Check that *redirect_uri* is registered for *client_id*.

    Only exact matches after normalization are accepted. Unregistered clients
    pass when *allow_unknown* is set.
    """
    client = storage.get_client(client_id)
    if client is None:
        if allow_unknown:
            logger.info("Allowing unregistered OAuth client %s", client_id)
            return RedirectValidation(valid=True)
        return RedirectValidation(valid=False, error=f"Unknown client: {client_id}")

    registered = [str(u) for u in client.redirect_uris]
    if not registered:
        return RedirectValidation(
            valid=False, error="Client has no registered redirect URIs"
        )

    requested = normalize_redirect_uri(redirect_uri)
    if requested not in {normalize_redirect_uri(u) for u in registered}:
        logger.warning(
            "Redirect URI validation failed for client %s: requested=%s registered=%s",
            client_id,
            redirect_uri,
            registered,
        )
        return RedirectValidation(
            valid=False,
            error=(
                f"Redirect URI not registered. Requested: {redirect_uri}, "
                f"Registered: {', '.join(registered)}"
            ),
        )

    return RedirectValidation(valid=True)
