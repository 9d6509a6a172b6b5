# =============================================================================
# lib/utils.py - Shared Utilities
# =============================================================================
# Common utilities used across the application.
# =============================================================================

import hashlib
import secrets
import string
from datetime import datetime, timezone
from typing import Any


# =============================================================================
# Time Utilities
# =============================================================================

def utcnow() -> datetime:
    """
    Current UTC time as a naive datetime.

    All timestamps are stored naive-in-UTC so SQLite and Postgres
    round-trip them identically.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# Hashing & Random Utilities
# =============================================================================

def sha1_hex(value: str) -> str:
    """Hex SHA-1 digest of a UTF-8 string."""
    return hashlib.sha1(value.encode("utf-8")).hexdigest()


def sha256_hex(value: str) -> str:
    """Hex SHA-256 digest of a UTF-8 string."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def random_digits(length: int) -> str:
    """
    Cryptographically random numeric string of exactly `length` digits.

    Leading zeros are kept, so "00012345" is a valid 8 digit result.
    """
    return "".join(secrets.choice(string.digits) for _ in range(length))


def random_alphanumeric(length: int) -> str:
    """Cryptographically random lowercase alphanumeric string."""
    alphabet = string.ascii_lowercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


# =============================================================================
# Base Error Class
# =============================================================================

class ApplicationError(Exception):
    """
    Base error class for errors raised outside the HTTP layer.

    Attributes:
        code: Error code for categorization
        message: Human-readable error message
        suggestion: Actionable suggestion for fixing the error
        details: Additional context for debugging
    """

    def __init__(
        self,
        message: str,
        code: str = "APPLICATION_ERROR",
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.details = details or {}

    def __str__(self) -> str:
        result = f"[{self.code}] {self.message}"
        if self.suggestion:
            result += f"\n  Suggestion: {self.suggestion}"
        return result

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for API responses."""
        return {
            "code": self.code,
            "message": self.message,
            "suggestion": self.suggestion,
            "details": self.details,
        }
