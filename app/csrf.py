# =============================================================================
# app/csrf.py - CSRF Protection
# =============================================================================
# Every console form and AJAX call must echo a token derived from a secret
# kept in the session:
#
#   token = URLSafeTimedSerializer(CSRF_AUTH_KEY).dumps(session secret)
#
# The token is rendered into each page (meta tag and hidden form field) and
# checked by verify_csrf(), which is installed as a global app dependency.
# The device API under /api/ authenticates with API keys and is exempt.
# =============================================================================

import hmac
import logging
import secrets

from fastapi import Request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from app.config import settings
from app.exceptions import CSRFError

logger = logging.getLogger(__name__)

CSRF_SESSION_KEY = "csrf_token"
CSRF_FORM_FIELD = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"
CSRF_SALT = "csrf"

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "TRACE"})
EXEMPT_PREFIXES = ("/api/",)

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(settings.CSRF_AUTH_KEY, salt=CSRF_SALT)


def csrf_secret(request: Request) -> str:
    """Per-session secret, created on first use."""
    secret = request.session.get(CSRF_SESSION_KEY)
    if not secret:
        secret = secrets.token_urlsafe(32)
        request.session[CSRF_SESSION_KEY] = secret
    return secret


def generate_csrf_token(request: Request) -> str:
    """Signed token to embed in the page for this session."""
    return _serializer().dumps(csrf_secret(request))


def validate_csrf_token(request: Request, token: str | None) -> None:
    """
    Check a submitted token against the session secret.

    Raises:
        CSRFError: If the token is missing, malformed, expired or foreign
    """
    if not token:
        raise CSRFError("token missing")

    expected = request.session.get(CSRF_SESSION_KEY)
    if not expected:
        raise CSRFError("no token issued for this session")

    try:
        secret = _serializer().loads(token, max_age=settings.SESSION_DURATION)
    except SignatureExpired:
        raise CSRFError("token expired")
    except BadSignature:
        raise CSRFError("token invalid")

    if not isinstance(secret, str) or not hmac.compare_digest(secret, expected):
        raise CSRFError("token does not match session")


async def verify_csrf(request: Request) -> None:
    """
    Global dependency rejecting state-changing requests without a valid token.

    Forms send the token in the csrf_token field; AJAX calls send the
    X-CSRF-Token header.
    """
    if request.method in SAFE_METHODS:
        return
    if request.url.path.startswith(EXEMPT_PREFIXES):
        return

    token = request.headers.get(CSRF_HEADER)
    content_type = request.headers.get("content-type", "")
    if not token and content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        value = form.get(CSRF_FORM_FIELD)
        token = value if isinstance(value, str) else None

    try:
        validate_csrf_token(request, token)
    except CSRFError as e:
        logger.warning(f"CSRF check failed for {request.method} {request.url.path}: {e.message}")
        raise
