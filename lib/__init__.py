# =============================================================================
# lib/ - Standalone Utility Modules
# =============================================================================
# This package contains reusable infrastructure:
# - database.py: SQLAlchemy engine, sessions and table creation
# - firebase_client.py: Typed firebase_admin wrapper for session cookies
# - ratelimit.py: Limiter store and per-user / per-IP key derivation
# - utils.py: Shared utilities (hashing, random codes, base error)
#
# These modules are self-contained and can be tested in isolation.
# =============================================================================

from lib.firebase_client import FirebaseClient, FirebaseClientError
from lib.ratelimit import RateLimitResult, create_limiter, limiter_key
from lib.utils import ApplicationError, sha1_hex, sha256_hex, utcnow

__all__ = [
    # Firebase
    "FirebaseClient",
    "FirebaseClientError",
    # Rate limiting
    "RateLimitResult",
    "create_limiter",
    "limiter_key",
    # Utils
    "ApplicationError",
    "sha1_hex",
    "sha256_hex",
    "utcnow",
]
