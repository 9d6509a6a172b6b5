# =============================================================================
# tests/test_ratelimit.py - Rate Limiter Tests
# =============================================================================
# Unit tests for limiter key derivation and the limiter stores.
#
# Run with: pytest tests/test_ratelimit.py -v
# =============================================================================

from types import SimpleNamespace

from starlette.requests import Request

from app.config import get_settings
from lib.ratelimit import NoopLimiter, StoreLimiter, create_limiter, limiter_key
from lib.utils import sha1_hex


def make_request(headers=None, client=("203.0.113.7", 51000), user=None) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    request = Request(scope)
    if user is not None:
        request.state.user = user
    return request


# =============================================================================
# Key Derivation Tests
# =============================================================================

class TestLimiterKey:
    """Tests for limiter_key()."""

    def test_signed_in_user_is_limited_by_email(self):
        user = SimpleNamespace(id=1, email="user@example.com")
        request = make_request(headers={"X-Forwarded-For": "198.51.100.1"}, user=user)

        assert limiter_key(request) == f"server:user:{sha1_hex('user@example.com')}"

    def test_user_without_email_falls_back_to_ip(self):
        user = SimpleNamespace(id=1, email="")
        request = make_request(user=user)

        assert limiter_key(request) == f"server:ip:{sha1_hex('203.0.113.7')}"

    def test_anonymous_is_limited_by_client_address(self):
        assert limiter_key(make_request()) == f"server:ip:{sha1_hex('203.0.113.7')}"

    def test_forwarded_for_uses_first_entry(self):
        request = make_request(headers={"X-Forwarded-For": "198.51.100.1, 10.0.0.2"})

        assert limiter_key(request) == f"server:ip:{sha1_hex('198.51.100.1')}"

    def test_forwarded_for_entry_is_not_stripped(self):
        request = make_request(headers={"X-Forwarded-For": "198.51.100.1 ,10.0.0.2"})

        assert limiter_key(request) == f"server:ip:{sha1_hex('198.51.100.1 ')}"


# =============================================================================
# Store Tests
# =============================================================================

class TestLimiters:
    """Tests for limiter stores."""

    def test_memory_store_counts_per_key(self):
        limiter = StoreLimiter("memory://", tokens=2, interval=60)

        first = limiter.take("a")
        second = limiter.take("a")
        third = limiter.take("a")
        other = limiter.take("b")

        assert first.allowed and second.allowed
        assert not third.allowed
        assert third.remaining == 0
        assert third.limit == 2
        assert third.reset > 0
        assert other.allowed
        assert first.remaining == 1

    def test_close_resets_memory_store(self):
        limiter = StoreLimiter("memory://", tokens=1, interval=60)
        limiter.take("a")

        limiter.close()

        assert limiter.take("a").allowed

    def test_noop_always_allows(self):
        limiter = NoopLimiter(tokens=1)
        assert all(limiter.take("a").allowed for _ in range(5))

    def test_create_limiter_by_type(self):
        memory = get_settings().model_copy(update={"RATE_LIMIT_TYPE": "memory"})
        noop = get_settings().model_copy(update={"RATE_LIMIT_TYPE": "noop"})

        assert isinstance(create_limiter(memory), StoreLimiter)
        assert isinstance(create_limiter(noop), NoopLimiter)
