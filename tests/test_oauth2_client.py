# Tests for the resource-server side: TokenValidationClient and require_access_token.
# Created: 2026-10-11

from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from conftest import REDIRECT_URI, USER_ID, identity_token
from fastapi import Depends
from fastapi.testclient import TestClient

from axiom.api.deps import require_access_token
from axiom.api.oauth2.client import TokenValidationClient
from axiom.api.oauth2.models import ValidationResult
from axiom.api.serve import create_api_app
from axiom.security.rate_limiter import RateLimiter


def _client(handler):
    return TokenValidationClient("https://auth.example", transport=httpx.MockTransport(handler))


@pytest.fixture
def test_app(server, monkeypatch):
    import axiom.api.oauth2.server as server_mod
    import axiom.security.rate_limiter as limiter_mod

    monkeypatch.setattr(server_mod, "_server", server)
    monkeypatch.setattr(limiter_mod, "_auth_limiter", RateLimiter(rate=1000.0, capacity=1000))
    app = create_api_app()

    @app.get("/me")
    async def me(auth: ValidationResult = Depends(require_access_token)):
        return {"user_id": auth.user_id}

    return app


def _issue_token(server, registered_client):
    redirect = server.approve(
        identity_token=identity_token(),
        client_id=registered_client.client_id,
        redirect_uri=REDIRECT_URI,
    )
    code = parse_qs(urlparse(redirect).query)["code"][0]
    return server.exchange(
        grant_type="authorization_code",
        code=code,
        redirect_uri=REDIRECT_URI,
        client_id=registered_client.client_id,
    )["access_token"]


class TestTokenValidationClient:
    async def test_valid_token(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(
                200,
                json={"valid": True, "user_id": "u1", "expires_at": "2027-01-01T00:00:00+00:00"},
            )

        result = await _client(handler).validate("t" * 48)
        assert result.valid is True
        assert result.user_id == "u1"
        assert result.expires_at.year == 2027
        assert seen["url"] == "https://auth.example/oauth/validate"
        assert seen["auth"] == "Bearer " + "t" * 48

    async def test_rejected_token(self):
        def handler(request):
            return httpx.Response(401, json={"valid": False, "error": "invalid_token"})

        result = await _client(handler).validate("t" * 48)
        assert result.valid is False
        assert result.user_id is None

    async def test_timeout_is_unauthenticated(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        result = await _client(handler).validate("t" * 48)
        assert result.valid is False
        assert result.error == "validation_timeout"

    async def test_connection_error_is_unauthenticated(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        result = await _client(handler).validate("t" * 48)
        assert result.valid is False
        assert result.error == "validation_unavailable"

    @pytest.mark.parametrize(
        "status, kwargs",
        [
            (200, {"text": "not json"}),
            (200, {"json": ["valid"]}),
            (200, {"json": {"valid": "yes", "user_id": "u1"}}),
            (200, {"json": {"valid": True}}),
            (200, {"json": {"valid": True, "user_id": "u1", "expires_at": "soon"}}),
            (500, {"json": {"valid": True, "user_id": "u1"}}),
        ],
    )
    async def test_malformed_responses(self, status, kwargs):
        client = _client(lambda request: httpx.Response(status, **kwargs))
        result = await client.validate("t" * 48)
        assert result.valid is False

    async def test_empty_token_skips_request(self):
        def handler(request):
            raise AssertionError("should not be called")

        assert (await _client(handler).validate("")).valid is False

    def test_from_settings(self, settings):
        client = TokenValidationClient.from_settings(settings)
        assert client.base_url == "https://auth.example"
        assert client.timeout == settings.validate_timeout_seconds

    async def test_against_live_app(self, test_app, server, registered_client):
        token = _issue_token(server, registered_client)
        client = TokenValidationClient(
            "http://testserver", transport=httpx.ASGITransport(app=test_app)
        )

        result = await client.validate(token)
        assert result.valid is True
        assert result.user_id == USER_ID

        result = await client.validate("x" * 48)
        assert result.valid is False


class TestRequireAccessToken:
    def test_authenticated(self, test_app, server, registered_client):
        token = _issue_token(server, registered_client)
        resp = TestClient(test_app).get("/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json() == {"user_id": USER_ID}

    def test_missing_header(self, test_app):
        resp = TestClient(test_app).get("/me")
        assert resp.status_code == 401
        assert resp.json()["error"] == "invalid_token"

    def test_session_token_is_not_an_access_token(self, test_app):
        resp = TestClient(test_app).get(
            "/me", headers={"Authorization": f"Bearer {identity_token()}"}
        )
        assert resp.status_code == 401

    def test_expired_token(self, test_app, server, registered_client, clock):
        token = _issue_token(server, registered_client)
        clock.advance(days=90, seconds=1)
        resp = TestClient(test_app).get("/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
