# =============================================================================
# app/dependencies.py - Shared Dependencies
# =============================================================================
# FastAPI dependency injection for shared resources.
# These are injected into route handlers using Depends().
# =============================================================================

import logging
import time
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.exceptions import RateLimitExceededError
from lib.database import get_db
from lib.firebase_client import FirebaseClient
from lib.ratelimit import Limiter, limiter_key

logger = logging.getLogger(__name__)


def get_firebase_client() -> type[FirebaseClient]:
    """
    Get the Firebase client.

    Returns the singleton client wrapper; tests override this dependency
    with an in-process fake.
    """
    return FirebaseClient


def get_limiter(request: Request) -> Limiter:
    return request.app.state.limiter


# Type aliases for dependency injection
DbDep = Annotated[Session, Depends(get_db)]
FirebaseDep = Annotated[type[FirebaseClient], Depends(get_firebase_client)]
LimiterDep = Annotated[Limiter, Depends(get_limiter)]


def rate_limit(request: Request, limiter: LimiterDep) -> None:
    """
    Take one token for the request's key.

    Runs last in each route group so signed-in users are limited by user
    rather than by IP. The result is recorded on request.state for
    RateLimitHeadersMiddleware.

    Raises:
        RateLimitExceededError: If the key has no tokens left this window
    """
    key = limiter_key(request)
    result = limiter.take(key)
    request.state.rate_limit = result

    if not result.allowed:
        retry_after = max(result.reset - int(time.time()), 1)
        logger.warning(f"Rate limit exceeded for {key} on {request.url.path}")
        raise RateLimitExceededError(retry_after)
