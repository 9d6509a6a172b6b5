# =============================================================================
# lib/ratelimit.py - Rate Limiter Store and Key Derivation
# =============================================================================
# Builds the limiter used by every route group and derives the key that a
# request is counted against:
# - Signed-in users are limited per user (hashed email)
# - Everyone else is limited per client IP, honouring X-Forwarded-For
#
# The counting itself is done by the `limits` package (the engine behind
# slowapi), backed by process memory or a shared Redis instance.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from limits import RateLimitItemPerSecond
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from app.config import Settings
from lib.utils import sha1_hex

logger = logging.getLogger("ratelimit")


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of taking one token for a key."""
    allowed: bool
    limit: int
    remaining: int
    reset: int  # unix timestamp when the window resets


class Limiter(Protocol):
    def take(self, key: str) -> RateLimitResult: ...

    def close(self) -> None: ...


class NoopLimiter:
    """Limiter that never limits (RATE_LIMIT_TYPE=noop)."""

    def __init__(self, tokens: int):
        self.tokens = tokens

    def take(self, key: str) -> RateLimitResult:
        return RateLimitResult(allowed=True, limit=self.tokens, remaining=self.tokens, reset=0)

    def close(self) -> None:
        pass


class StoreLimiter:
    """
    Fixed-window limiter: `tokens` requests per `interval` seconds per key.

    Args:
        storage_uri: limits storage URI ("memory://" or "redis://...")
        tokens: Requests allowed per window
        interval: Window length in seconds
    """

    def __init__(self, storage_uri: str, tokens: int, interval: int):
        self.storage_uri = storage_uri
        self.storage = storage_from_string(storage_uri)
        self.strategy = FixedWindowRateLimiter(self.storage)
        self.item = RateLimitItemPerSecond(tokens, interval)
        self.tokens = tokens

    def take(self, key: str) -> RateLimitResult:
        allowed = self.strategy.hit(self.item, key)
        stats = self.strategy.get_window_stats(self.item, key)
        return RateLimitResult(
            allowed=allowed,
            limit=self.tokens,
            remaining=max(stats.remaining, 0),
            reset=int(stats.reset_time),
        )

    def close(self) -> None:
        # Shared stores outlive this process; only drop in-memory counters
        if self.storage_uri.startswith("memory"):
            self.storage.reset()


def create_limiter(config: Settings) -> Limiter:
    """
    Build the limiter configured by RATE_LIMIT_TYPE.

    Raises:
        ValueError: If the storage URI cannot be handled
    """
    if config.RATE_LIMIT_TYPE == "noop":
        logger.info("rate limiting disabled")
        return NoopLimiter(config.RATE_LIMIT_TOKENS)

    storage_uri = "memory://" if config.RATE_LIMIT_TYPE == "memory" else config.REDIS_URL
    logger.info(
        f"rate limiting with {config.RATE_LIMIT_TYPE} store: "
        f"{config.RATE_LIMIT_TOKENS} per {config.RATE_LIMIT_INTERVAL}s"
    )
    return StoreLimiter(storage_uri, config.RATE_LIMIT_TOKENS, config.RATE_LIMIT_INTERVAL)


def limiter_key(request: Request) -> str:
    """
    Key a request is rate limited by.

    Limits by user if one is signed in, otherwise by IP. When the load
    balancer sets X-Forwarded-For, its first entry is the real client IP.
    """
    user = getattr(request.state, "user", None)
    if user is not None and user.email:
        logger.debug(f"limiting by user: {user.id}")
        return f"server:user:{sha1_hex(user.email)}"

    ip = get_remote_address(request)

    xff = request.headers.get("x-forwarded-for")
    if xff:
        ip = xff.split(",")[0]

    logger.debug(f"limiting by ip: {ip}")
    return f"server:ip:{sha1_hex(ip)}"
