# =============================================================================
# app/middleware.py - Global Request Middleware
# =============================================================================
# Middleware that wraps every request, outermost first:
# - MutateMethodMiddleware: HTML forms can only POST, so a `_method` form
#   field turns a POST into PATCH/PUT/DELETE before routing
# - SessionMiddleware (Starlette): signed session cookie, see app.main
# - PopulateTemplateVariablesMiddleware: shared template variables
# - RateLimitHeadersMiddleware: copies the X-RateLimit-* values recorded by
#   the rate_limit dependency onto the response
#
# Per route group checks (auth, realm, admin, rate limit) are dependencies,
# see app.auth.dependencies and app.dependencies.
# =============================================================================

import logging
from urllib.parse import parse_qs

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.config import settings

logger = logging.getLogger(__name__)

METHOD_OVERRIDE_FIELD = "_method"
ALLOWED_METHOD_OVERRIDES = frozenset({"PATCH", "PUT", "DELETE"})


class MutateMethodMiddleware:
    """
    Pure ASGI middleware implementing form method override.

    A urlencoded POST body with `_method=PATCH` (or PUT/DELETE) is routed as
    that method. The body is buffered, inspected and replayed unchanged so
    the handler can still read the form.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] != "POST":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers") or [])
        content_type = headers.get(b"content-type", b"").decode("latin-1")
        if not content_type.startswith("application/x-www-form-urlencoded"):
            await self.app(scope, receive, send)
            return

        # Drain the body so the override field can be read
        body = b""
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                return
            body += message.get("body", b"")
            more_body = message.get("more_body", False)

        values = parse_qs(body.decode("utf-8", errors="replace")).get(METHOD_OVERRIDE_FIELD)
        if values:
            method = values[0].strip().upper()
            if method in ALLOWED_METHOD_OVERRIDES:
                scope = dict(scope)
                scope["method"] = method
                logger.debug(f"Method override POST -> {method} for {scope['path']}")

        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        await self.app(scope, replay, send)


class PopulateTemplateVariablesMiddleware(BaseHTTPMiddleware):
    """
    Seed request.state.template_vars with values every page needs.

    Later stages (auth, realm) add current_user / current_realm.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request.state.template_vars = {
            "server": settings.SERVER_NAME,
            "title": settings.SERVER_NAME,
            "firebase": settings.firebase_web_config,
            "current_path": request.url.path,
            "dev_mode": settings.DEV_MODE,
        }
        return await call_next(request)


class RateLimitHeadersMiddleware(BaseHTTPMiddleware):
    """Expose the rate limit result of the request in X-RateLimit-* headers."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)

        result = getattr(request.state, "rate_limit", None)
        if result is not None:
            response.headers["X-RateLimit-Limit"] = str(result.limit)
            response.headers["X-RateLimit-Remaining"] = str(result.remaining)
            response.headers["X-RateLimit-Reset"] = str(result.reset)
        return response
