# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# This module provides pytest fixtures and configuration for all tests.
#
# Key features:
# - Sets up environment variables before any imports
# - Fresh in-memory SQLite database per test
# - In-process fake of the Firebase client
# - Helpers to sign in and to read the CSRF token of a page
# =============================================================================

import base64
import json
import os
import re

# =============================================================================
# Set up test environment BEFORE any imports
# =============================================================================
# This must happen before importing app.config which loads settings immediately

os.environ["ENVIRONMENT"] = "development"
os.environ["DEV_MODE"] = "true"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_TYPE"] = "memory"
os.environ["RATE_LIMIT_TOKENS"] = "1000"
os.environ.setdefault("COOKIE_KEYS", "test-cookie-key-0123456789")
os.environ.setdefault("CSRF_AUTH_KEY", "test-csrf-key-0123456789")
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from app.dependencies import get_firebase_client
from core.models import Realm, User, new_realm_with_defaults
from core.services import RealmService, UserService
from lib.database import close_db, get_sessionmaker, init_db, reset_engine_for_tests
from lib.firebase_client import FirebaseClientError

CSRF_META = re.compile(r'<meta name="csrf-token" content="([^"]*)">')


# =============================================================================
# Fakes
# =============================================================================

class FakeFirebaseClient:
    """
    Stand-in for FirebaseClient.

    An ID token is the user's email; the session cookie is "session:<email>".
    Tokens without an "@" produce cookies whose claims carry no email.
    """

    def __init__(self):
        self.invalid_cookies: set[str] = set()
        self.revoked_cookies: set[str] = set()
        self.revocation_checks: list[str] = []
        self.accounts: dict[str, dict] = {}

    def create_session_cookie(self, id_token, expires_in):
        if id_token.startswith("bad"):
            raise FirebaseClientError("invalid ID token", code="SESSION_COOKIE_FAILED")
        return f"session:{id_token}"

    def verify_session_cookie(self, cookie, check_revoked=False):
        if cookie in self.invalid_cookies:
            raise FirebaseClientError("invalid session cookie", code="SESSION_COOKIE_INVALID")
        if check_revoked:
            self.revocation_checks.append(cookie)
            if cookie in self.revoked_cookies:
                raise FirebaseClientError("session revoked", code="SESSION_COOKIE_INVALID")

        subject = cookie.split(":", 1)[1]
        claims = {"uid": subject}
        if "@" in subject:
            claims["email"] = subject
        return claims

    def ensure_verified_user(self, email, display_name, password):
        created = email not in self.accounts
        self.accounts[email] = {"display_name": display_name, "password": password, "email_verified": True}
        return created


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
def db_engine():
    """Fresh in-memory database with all tables."""
    engine = reset_engine_for_tests("sqlite://")
    init_db()
    yield engine
    close_db()


@pytest.fixture
def db(db_engine):
    session = get_sessionmaker()()
    yield session
    session.close()


@pytest.fixture
def narnia(db) -> Realm:
    return RealmService.save_realm(db, new_realm_with_defaults("Narnia"))


@pytest.fixture
def wonderland(db) -> Realm:
    return RealmService.save_realm(db, new_realm_with_defaults("Wonderland"))


@pytest.fixture
def admin_user(db, narnia) -> User:
    user, _ = UserService.add_user_to_realm(db, narnia, "admin@example.com", "Admin User", admin=True)
    return user


@pytest.fixture
def member_user(db, narnia) -> User:
    user, _ = UserService.add_user_to_realm(db, narnia, "user@example.com", "Demo User")
    return user


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture
def fake_firebase():
    return FakeFirebaseClient()


@pytest.fixture
def app(db_engine, fake_firebase):
    from app.main import create_app

    application = create_app()
    application.dependency_overrides[get_firebase_client] = lambda: fake_firebase
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app):
    return TestClient(app)


def read_csrf_token(client: TestClient, path: str = "/") -> str:
    """Render a page and pull the CSRF token out of its meta tag."""
    response = client.get(path)
    match = CSRF_META.search(response.text)
    assert match, f"no CSRF token on {path} (status {response.status_code})"
    return match.group(1)


@pytest.fixture
def csrf_token():
    return read_csrf_token


@pytest.fixture
def login(client):
    """Sign in as the given email; returns the CSRF token for later posts."""

    def _login(email: str) -> str:
        token = read_csrf_token(client)
        response = client.post(
            "/session",
            data={"idToken": email, "csrf_token": token},
            follow_redirects=False,
        )
        assert response.status_code == 303, response.text
        return token

    return _login


def session_data(client: TestClient) -> dict:
    """Decode the client's signed session cookie (payload.timestamp.signature)."""
    cookie = client.cookies.get("session")
    if not cookie:
        return {}
    payload = cookie.split(".", 1)[0]
    return json.loads(base64.b64decode(payload))


@pytest.fixture
def read_session():
    return session_data
