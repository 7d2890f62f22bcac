# Shared fixtures for the authorization server tests.
# Created: 2026-10-10

import base64
import hashlib
import secrets
from dataclasses import asdict
from datetime import UTC, datetime, timedelta

import pytest

from axiom.api.oauth2.identity import create_identity_token
from axiom.api.oauth2.server import AuthorizationServer
from axiom.api.oauth2.storage import MemoryOAuthStorage
from axiom.config import Settings
from axiom.security.audit import AuditEvent, AuditLogger

AUTH_SECRET = "test-auth-secret-0123456789abcdefghijklmnop"
USER_ID = "u1"
USER_TOKEN_KEY = "u1-token-key-0123456789abcdefghij"
REDIRECT_URI = "https://a.example/cb"


class FakeClock:
    """Controllable replacement for utcnow()."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 10, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class MemoryAuditLogger(AuditLogger):
    """Audit logger that records events in memory only."""

    def __init__(self) -> None:
        self.events: list[dict] = []

    def log(self, event: AuditEvent) -> None:
        self.events.append(asdict(event))


def make_pkce_pair():
    """Generate a PKCE code_verifier and code_challenge pair."""
    verifier = secrets.token_urlsafe(32)
    challenge = (
        base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest())
        .rstrip(b"=")
        .decode()
    )
    return verifier, challenge


def identity_token(user_id=USER_ID, token_key=USER_TOKEN_KEY, ttl_seconds=3600):
    return create_identity_token(user_id, token_key, AUTH_SECRET, ttl_seconds)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        data_dir=tmp_path,
        auth_token_secret=AUTH_SECRET,
        storage_backend="memory",
        app_url="https://app.example",
        public_url="https://auth.example",
    )


@pytest.fixture
def storage():
    store = MemoryOAuthStorage()
    store.put_user(USER_ID, USER_TOKEN_KEY)
    return store


@pytest.fixture
def audit():
    return MemoryAuditLogger()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def server(storage, settings, audit, clock):
    return AuthorizationServer(storage, settings=settings, audit=audit, clock=clock)


@pytest.fixture
def registered_client(server):
    return server.register_client(client_name="Agent", redirect_uris=[REDIRECT_URI])
