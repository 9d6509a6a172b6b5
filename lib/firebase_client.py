# =============================================================================
# lib/firebase_client.py - Firebase Authentication Wrapper
# =============================================================================
# This module wraps the firebase_admin SDK for the two places that talk to
# the identity provider:
# - The console: exchanging browser ID tokens for session cookies and
#   verifying those cookies on every authenticated request
# - The seed script: creating demo accounts with verified emails
#
# Implements the singleton pattern to reuse a single firebase_admin app.
# Every SDK failure is re-raised as FirebaseClientError so callers only
# handle one exception type.
#
# Usage:
#   from lib.firebase_client import FirebaseClient
#   claims = FirebaseClient.verify_session_cookie(cookie)
# =============================================================================

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

import firebase_admin
from firebase_admin import auth
from firebase_admin.exceptions import FirebaseError

from app.config import settings
from lib.utils import ApplicationError

# Set up logging for this module
logger = logging.getLogger(__name__)

FIREBASE_APP_NAME = "verification-server"


class FirebaseClientError(ApplicationError):
    """Error during identity provider operations."""

    def __init__(
        self,
        message: str,
        code: str = "FIREBASE_ERROR",
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, code=code, suggestion=suggestion, details=details)


class FirebaseClient:
    """
    Typed wrapper for Firebase Authentication operations.

    One firebase_admin app instance is shared across the process. All
    methods are class methods so the class itself can be handed out as a
    FastAPI dependency and swapped for a fake in tests.
    """

    _instance: firebase_admin.App | None = None

    @classmethod
    def get_app(cls) -> firebase_admin.App:
        """
        Get or create the singleton firebase_admin app.

        Credentials come from Application Default Credentials; the project
        and bucket come from settings.

        Raises:
            FirebaseClientError: If the app cannot be initialized
        """
        if cls._instance is None:
            try:
                cls._instance = firebase_admin.initialize_app(
                    options=settings.firebase_admin_options,
                    name=FIREBASE_APP_NAME,
                )
                logger.info("Firebase app initialized successfully")
            except (ValueError, FirebaseError) as e:
                raise FirebaseClientError(
                    message=f"Failed to initialize Firebase: {e}",
                    code="CLIENT_INIT_FAILED",
                    suggestion="Check FIREBASE_PROJECT_ID and GOOGLE_APPLICATION_CREDENTIALS",
                )
        return cls._instance

    # -------------------------------------------------------------------------
    # Session Cookies
    # -------------------------------------------------------------------------

    @classmethod
    def create_session_cookie(cls, id_token: str, expires_in: timedelta) -> str:
        """
        Exchange a browser ID token for a session cookie.

        Args:
            id_token: ID token obtained by the JS SDK after sign-in
            expires_in: Cookie lifetime (5 minutes to 14 days)

        Returns:
            The encoded session cookie

        Raises:
            FirebaseClientError: If the token is invalid or the exchange fails
        """
        try:
            return auth.create_session_cookie(id_token, expires_in=expires_in, app=cls.get_app())
        except (ValueError, FirebaseError) as e:
            raise FirebaseClientError(
                message=f"Failed to create session cookie: {e}",
                code="SESSION_COOKIE_FAILED",
                suggestion="Sign in again to obtain a fresh ID token",
            )

    @classmethod
    def verify_session_cookie(cls, cookie: str, check_revoked: bool = False) -> dict[str, Any]:
        """
        Verify a session cookie and return its claims.

        Args:
            cookie: Session cookie created by create_session_cookie
            check_revoked: Also ask Firebase whether the session was revoked

        Returns:
            Decoded claims dict (includes "email" for password accounts)

        Raises:
            FirebaseClientError: If the cookie is invalid, expired or revoked
        """
        try:
            return auth.verify_session_cookie(cookie, check_revoked=check_revoked, app=cls.get_app())
        except (ValueError, FirebaseError) as e:
            raise FirebaseClientError(
                message=f"Failed to verify session cookie: {e}",
                code="SESSION_COOKIE_INVALID",
                suggestion="Sign in again",
            )

    # -------------------------------------------------------------------------
    # User Management
    # -------------------------------------------------------------------------

    @classmethod
    def get_user_by_email(cls, email: str) -> auth.UserRecord | None:
        """
        Look up an account by email.

        Returns:
            The user record, or None if no account exists

        Raises:
            FirebaseClientError: If the lookup fails for any other reason
        """
        try:
            return auth.get_user_by_email(email, app=cls.get_app())
        except auth.UserNotFoundError:
            return None
        except (ValueError, FirebaseError) as e:
            raise FirebaseClientError(
                message=f"Failed to get user by email {email}: {e}",
                code="GET_USER_FAILED",
                details={"email": email},
            )

    @classmethod
    def ensure_verified_user(cls, email: str, display_name: str, password: str) -> bool:
        """
        Make sure an account exists for email and is marked verified.

        Existing accounts only get their email_verified flag flipped;
        the password of an existing account is left alone.

        Returns:
            True if an account was created, False if one already existed

        Raises:
            FirebaseClientError: If creating or updating the account fails
        """
        existing = cls.get_user_by_email(email)

        if existing is not None:
            if existing.email_verified:
                return False
            try:
                auth.update_user(existing.uid, email_verified=True, app=cls.get_app())
            except (ValueError, FirebaseError) as e:
                raise FirebaseClientError(
                    message=f"Failed to update user {email}: {e}",
                    code="UPDATE_USER_FAILED",
                    details={"email": email},
                )
            return False

        try:
            auth.create_user(
                email=email,
                email_verified=True,
                display_name=display_name,
                password=password,
                app=cls.get_app(),
            )
        except (ValueError, FirebaseError) as e:
            raise FirebaseClientError(
                message=f"Failed to create user {email}: {e}",
                code="CREATE_USER_FAILED",
                details={"email": email},
            )
        logger.info(f"Created Firebase account for {email}")
        return True
