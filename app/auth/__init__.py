# =============================================================================
# app/auth/__init__.py - Authentication Module
# =============================================================================
# Provides Firebase session cookie authentication for the console and
# API key authentication for the device API.
#
# Usage:
#   from app.auth import CurrentUser, CurrentRealm
#
#   @router.get("")
#   def home(user: CurrentUser, realm: CurrentRealm):
#       ...
# =============================================================================

from app.auth.dependencies import (
    CurrentApp,
    CurrentRealm,
    CurrentUser,
    require_api_key,
    require_auth,
    require_realm,
    require_realm_admin,
)

__all__ = [
    "CurrentApp",
    "CurrentRealm",
    "CurrentUser",
    "require_api_key",
    "require_auth",
    "require_realm",
    "require_realm_admin",
]
