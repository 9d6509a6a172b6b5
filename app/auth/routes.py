# =============================================================================
# app/auth/routes.py - Session Routes
# =============================================================================
# Sign-in and sign-out for the console.
#
# Note: The password exchange itself happens client-side with the Firebase
# JS SDK. The browser then posts the resulting ID token here, which is
# exchanged for a long-lived Firebase session cookie kept in our session.
# =============================================================================

import logging
from typing import Annotated

from fastapi import APIRouter, Form, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response

from app.auth.dependencies import FIREBASE_COOKIE_KEY, REALM_ID_KEY
from app.config import settings
from app.dependencies import FirebaseDep
from app.exceptions import RedirectError, wants_json
from app.flash import FLASH_SESSION_KEY, flash_alert
from lib.firebase_client import FirebaseClientError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Session"])


@router.post("/session")
def create_session(
    request: Request,
    firebase: FirebaseDep,
    id_token: Annotated[str, Form(alias="idToken")],
) -> Response:
    """
    Exchange a Firebase ID token for a console session.

    Returns:
        JSON {"status": "ok"} for AJAX callers, otherwise a redirect to /realm

    Raises:
        RedirectError: Back to the login page if the token is rejected
    """
    try:
        cookie = firebase.create_session_cookie(id_token, settings.session_duration)
    except FirebaseClientError as e:
        logger.warning(f"Failed to create session: {e.message}")
        raise RedirectError("/", "Failed to create session")

    request.session[FIREBASE_COOKIE_KEY] = cookie
    request.session.pop(REALM_ID_KEY, None)
    logger.info("Created console session")

    if wants_json(request):
        return JSONResponse({"status": "ok"})
    return RedirectResponse("/realm", status_code=303)


@router.get("/signout")
def signout(request: Request) -> RedirectResponse:
    """
    Clear the session and return to the login page.

    Pending flash messages survive so the login page can explain why the
    user was signed out.
    """
    pending = request.session.get(FLASH_SESSION_KEY)
    request.session.clear()
    if pending:
        request.session[FLASH_SESSION_KEY] = pending
    else:
        flash_alert(request, "Successfully signed out.")
    return RedirectResponse("/", status_code=303)
