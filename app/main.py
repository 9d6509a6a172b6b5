# =============================================================================
# app/main.py - FastAPI Application Entry Point
# =============================================================================
# This is the main entry point for the verification server console.
# It configures the FastAPI application with middleware, routers, and handlers.
#
# Usage:
#   uvicorn app.main:app --reload
#   python -m app.main
# =============================================================================

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.middleware.sessions import SessionMiddleware

from app.auth import require_api_key, require_auth, require_realm, require_realm_admin
from app.auth import routes as session_routes
from app.config import settings
from app.csrf import verify_csrf
from app.dependencies import rate_limit
from app.exceptions import (
    VerificationServerException,
    unhandled_exception_handler,
    validation_exception_handler,
    verification_server_exception_handler,
)
from app.middleware import (
    MutateMethodMiddleware,
    PopulateTemplateVariablesMiddleware,
    RateLimitHeadersMiddleware,
)
from app.routers import api, apikeys, health, home, index, realm, realmadmin, users
from lib.database import close_db, init_db
from lib.ratelimit import create_limiter

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Runs on startup and shutdown:
    - Startup: Create missing tables
    - Shutdown: Release the rate limiter store and database pool
    """
    # Startup
    logger.info(f"Starting {settings.SERVER_NAME} in {settings.ENVIRONMENT} mode")
    if settings.DEV_MODE:
        logger.warning("DEV_MODE is enabled: session cookies are sent over plain HTTP")
    init_db()

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.SERVER_NAME}")
    app.state.limiter.close()
    close_db()


def create_app() -> FastAPI:
    """
    Build the application.

    Middleware runs outermost first: method override, session, template
    variables, rate limit headers. CSRF is a global dependency so it can
    read the (cached) form body. Each route group then applies its own
    ordered dependencies, always ending with rate_limit.
    """
    app = FastAPI(
        title=settings.SERVER_NAME,
        description="Console and API for issuing and verifying diagnosis verification codes.",
        version="1.0.0",
        lifespan=lifespan,
        dependencies=[Depends(verify_csrf)],
        openapi_tags=[
            {"name": "Session", "description": "Sign in and sign out"},
            {"name": "Realm", "description": "Realm selection"},
            {"name": "Home", "description": "Issue verification codes"},
            {"name": "API Keys", "description": "Manage realm API keys"},
            {"name": "Users", "description": "Manage realm users"},
            {"name": "Realm Settings", "description": "Realm code policy"},
            {"name": "API", "description": "API key authenticated issue and verify"},
            {"name": "Health", "description": "Health checks"},
        ],
    )

    app.state.limiter = create_limiter(settings)

    # =========================================================================
    # Middleware (last added runs first)
    # =========================================================================

    app.add_middleware(RateLimitHeadersMiddleware)

    # Must run before the other stages, which add data to the template map
    app.add_middleware(PopulateTemplateVariablesMiddleware)

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie="session",
        max_age=settings.SESSION_DURATION,
        path="/",
        same_site="strict",
        https_only=not settings.DEV_MODE,
        domain=settings.COOKIE_DOMAIN,
    )

    # Routing matches on method, so the override has to happen before it
    app.add_middleware(MutateMethodMiddleware)

    # =========================================================================
    # Exception Handlers
    # =========================================================================

    app.add_exception_handler(VerificationServerException, verification_server_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # =========================================================================
    # Routers
    # =========================================================================

    authenticated = [Depends(require_auth)]
    realm_scoped = authenticated + [Depends(require_realm)]
    realm_admin = realm_scoped + [Depends(require_realm_admin)]
    limited = [Depends(rate_limit)]

    # Public pages
    for router in (index.router, health.router, session_routes.router):
        app.include_router(router, dependencies=limited)

    # Realm list and selection
    app.include_router(realm.router, prefix="/realm", dependencies=authenticated + limited)

    # Code issue page
    app.include_router(home.router, prefix="/home", dependencies=realm_scoped + limited)

    # Realm administration
    app.include_router(apikeys.router, prefix="/apikeys", dependencies=realm_admin + limited)
    app.include_router(users.router, prefix="/users", dependencies=realm_admin + limited)
    app.include_router(realmadmin.router, prefix="/realm/settings", dependencies=realm_admin + limited)

    # API key authenticated endpoints
    app.include_router(api.router, prefix="/api", dependencies=[Depends(require_api_key)] + limited)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=settings.API_HOST, port=settings.API_PORT, reload=settings.DEV_MODE)
