# =============================================================================
# app/auth/dependencies.py - FastAPI Auth Dependencies
# =============================================================================
# Request pipeline stages for the console, applied per route group in order:
#
#   require_auth -> require_realm -> require_realm_admin -> rate_limit
#
# plus require_api_key for the device API.
#
# Console sessions hold a Firebase session cookie (created at sign-in by
# POST /session). Failures flash a message and redirect the browser.
#
# Usage:
#   app.include_router(
#       router,
#       prefix="/home",
#       dependencies=[Depends(require_auth), Depends(require_realm), Depends(rate_limit)],
#   )
# =============================================================================

import logging
from typing import Annotated

from fastapi import Depends, Header, Request

from app.config import settings
from app.dependencies import DbDep, FirebaseDep
from app.exceptions import APIKeyError, RedirectError, UnauthorizedError
from app.render import set_template_var
from core.models import AuthorizedApp, Realm, User
from core.services import APIKeyService, UserService
from lib.firebase_client import FirebaseClientError
from lib.utils import utcnow

logger = logging.getLogger(__name__)

# Session keys
FIREBASE_COOKIE_KEY = "firebase_cookie"
REALM_ID_KEY = "realm_id"

SIGNOUT_PATH = "/signout"
REALM_SELECT_PATH = "/realm"


def require_auth(request: Request, db: DbDep, firebase: FirebaseDep) -> User:
    """
    Resolve the signed-in user from the session.

    The Firebase session cookie is verified on every request. Every
    REVOKE_CHECK_PERIOD it is also checked for revocation, which costs a
    round trip to Firebase.

    Returns:
        The signed-in user (also stored on request.state.user)

    Raises:
        RedirectError: To /signout if the session is missing or invalid
    """
    cookie = request.session.get(FIREBASE_COOKIE_KEY)
    if not cookie:
        raise RedirectError(SIGNOUT_PATH, "Session expired")

    try:
        claims = firebase.verify_session_cookie(cookie)
    except FirebaseClientError as e:
        logger.warning(f"Failed to verify session cookie: {e.message}")
        raise RedirectError(SIGNOUT_PATH, "Invalid session")

    email = claims.get("email")
    if not isinstance(email, str) or not email:
        logger.warning("Session cookie has no email claim")
        raise RedirectError(SIGNOUT_PATH, "Invalid session")

    user = UserService.find_user_by_email(db, email)
    if user is None:
        logger.warning(f"No user for authenticated email {email}")
        raise RedirectError(SIGNOUT_PATH, "That user does not exist")

    last_check = user.last_revoke_check
    if last_check is None or last_check + settings.revoke_check_period < utcnow():
        try:
            firebase.verify_session_cookie(cookie, check_revoked=True)
        except FirebaseClientError as e:
            logger.warning(f"Session for {user.email} failed revocation check: {e.message}")
            raise RedirectError(SIGNOUT_PATH, "Invalid session")
        UserService.mark_revoke_checked(db, user)
        logger.debug(f"Revocation check passed for user {user.id}")

    request.state.user = user
    set_template_var(request, "current_user", user)
    return user


def require_realm(
    request: Request,
    db: DbDep,
    user: Annotated[User, Depends(require_auth)],
) -> Realm:
    """
    Resolve the realm selected in the session.

    Users with exactly one realm get it selected automatically.

    Returns:
        The current realm (also stored on request.state.realm)

    Raises:
        RedirectError: To /realm if no realm is selected or it isn't viewable
    """
    realm_id = request.session.get(REALM_ID_KEY)
    if realm_id is None and len(user.realms) == 1:
        realm_id = user.realms[0].id
        request.session[REALM_ID_KEY] = realm_id

    if realm_id is None:
        raise RedirectError(REALM_SELECT_PATH, "Select a realm to continue.")

    realm = db.get(Realm, realm_id)
    if realm is None:
        request.session.pop(REALM_ID_KEY, None)
        raise RedirectError(REALM_SELECT_PATH, "Failed to load the selected realm, select another.")

    if not user.can_view_realm(realm.id):
        request.session.pop(REALM_ID_KEY, None)
        raise RedirectError(REALM_SELECT_PATH, "You don't have permission to view that realm.")

    request.state.realm = realm
    set_template_var(request, "current_realm", realm)
    set_template_var(request, "is_realm_admin", user.can_admin_realm(realm.id))
    return realm


def require_realm_admin(
    user: Annotated[User, Depends(require_auth)],
    realm: Annotated[Realm, Depends(require_realm)],
) -> None:
    """
    Raises:
        UnauthorizedError: If the user doesn't administer the current realm
    """
    if not user.can_admin_realm(realm.id):
        logger.warning(f"User {user.id} is not an admin of realm {realm.id}")
        raise UnauthorizedError()


def require_api_key(
    request: Request,
    db: DbDep,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> AuthorizedApp:
    """
    Resolve the API key of a device API call.

    Returns:
        The calling app (also stored on request.state.authorized_app)

    Raises:
        APIKeyError: If the key is missing, unknown or disabled
    """
    if not x_api_key:
        raise APIKeyError("Missing API key")

    app = APIKeyService.find_authorized_app_by_api_key(db, x_api_key)
    if app is None:
        raise APIKeyError()
    if app.disabled:
        logger.warning(f"Call with disabled API key {app.id}")
        raise APIKeyError("API key is disabled")

    request.state.authorized_app = app
    return app


# Type aliases for handlers
CurrentUser = Annotated[User, Depends(require_auth)]
CurrentRealm = Annotated[Realm, Depends(require_realm)]
CurrentApp = Annotated[AuthorizedApp, Depends(require_api_key)]
