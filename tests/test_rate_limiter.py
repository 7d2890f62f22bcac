# Tests for OAuth endpoint rate limiting.
# Created: 2026-10-11


from axiom.security.rate_limiter import (
    RateLimiter,
    RateLimitInfo,
    get_auth_limiter,
    reset_auth_limiter,
)


class TestRateLimiter:
    """Tests for the token-bucket RateLimiter."""

    def test_check_returns_info(self):
        limiter = RateLimiter(rate=10.0, capacity=5)
        info = limiter.check("203.0.113.7")
        assert isinstance(info, RateLimitInfo)
        assert info.allowed is True
        assert info.limit == 5
        assert info.remaining >= 0

    def test_check_denied(self):
        limiter = RateLimiter(rate=0.1, capacity=2)
        # Exhaust bucket
        limiter.check("client")
        limiter.check("client")
        info = limiter.check("client")
        assert info.allowed is False
        assert info.remaining == 0

    def test_buckets_are_per_client(self):
        limiter = RateLimiter(rate=0.1, capacity=1)
        assert limiter.allow("a") is True
        assert limiter.allow("a") is False
        assert limiter.allow("b") is True

    def test_headers_on_allowed(self):
        limiter = RateLimiter(rate=10.0, capacity=10)
        headers = limiter.check("client").headers()
        assert headers["X-RateLimit-Limit"] == "10"
        assert "X-RateLimit-Remaining" in headers
        assert "X-RateLimit-Reset" in headers
        # Should not have Retry-After when allowed
        assert "Retry-After" not in headers

    def test_headers_on_denied(self):
        limiter = RateLimiter(rate=0.1, capacity=1)
        limiter.check("client")
        info = limiter.check("client")
        headers = info.headers()
        assert info.allowed is False
        assert int(headers["Retry-After"]) > 0

    def test_tracked_clients_are_bounded(self):
        limiter = RateLimiter(rate=0.001, capacity=1, max_buckets=10)
        for i in range(100):
            limiter.allow(f"198.51.100.{i}")
        assert len(limiter._buckets) <= 10

    def test_refilled_buckets_are_dropped_first(self, monkeypatch):
        clock = [0.0]
        monkeypatch.setattr("axiom.security.rate_limiter.time.monotonic", lambda: clock[0])
        limiter = RateLimiter(rate=1.0, capacity=2, max_buckets=2)
        limiter.check("idle")
        limiter.check("busy")
        limiter.check("busy")

        clock[0] = 1.0
        limiter.check("new")
        assert set(limiter._buckets) == {"busy", "new"}

    def test_least_recent_bucket_is_dropped(self, monkeypatch):
        clock = [0.0]
        monkeypatch.setattr("axiom.security.rate_limiter.time.monotonic", lambda: clock[0])
        limiter = RateLimiter(rate=0.001, capacity=1, max_buckets=2)
        for t, key in enumerate(["a", "b", "c"]):
            clock[0] = float(t)
            limiter.check(key)
        assert set(limiter._buckets) == {"b", "c"}
        # "b" is still tracked, so it stays limited.
        assert limiter.allow("b") is False


class TestRateLimitInfo:
    def test_headers_format(self):
        info = RateLimitInfo(allowed=True, limit=60, remaining=59, reset_after=1.5)
        h = info.headers()
        assert h["X-RateLimit-Limit"] == "60"
        assert h["X-RateLimit-Remaining"] == "59"
        assert h["X-RateLimit-Reset"] == "2"  # ceil(1.5)

    def test_headers_denied_format(self):
        info = RateLimitInfo(allowed=False, limit=60, remaining=0, reset_after=3.7)
        assert info.headers()["Retry-After"] == "4"  # ceil(3.7)


class TestAuthLimiter:
    def test_built_from_settings(self, monkeypatch):
        from axiom.config import get_settings

        monkeypatch.setenv("AXIOM_AUTH_RATE_PER_SECOND", "2.5")
        monkeypatch.setenv("AXIOM_AUTH_RATE_BURST", "7")
        monkeypatch.setenv("AXIOM_AUTH_RATE_MAX_CLIENTS", "50")
        get_settings.cache_clear()
        reset_auth_limiter()
        try:
            limiter = get_auth_limiter()
            assert limiter.rate == 2.5
            assert limiter.capacity == 7
            assert limiter.max_buckets == 50
            assert get_auth_limiter() is limiter
        finally:
            reset_auth_limiter()
            get_settings.cache_clear()
