# =============================================================================
# app/routers/realm.py - Realm Selection
# =============================================================================
# Lists the realms a user may work in and stores the selection in the
# session. Every realm-scoped page redirects here when nothing is selected.
# =============================================================================

import logging
from typing import Annotated

from fastapi import APIRouter, Form, Request
from fastapi.responses import RedirectResponse

from app.auth.dependencies import REALM_ID_KEY, CurrentUser
from app.dependencies import DbDep
from app.flash import flash_error
from app.render import render_html
from core.services import RealmService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realm"])


@router.get("")
def list_realms(request: Request, db: DbDep, user: CurrentUser):
    realms = RealmService.list_realms_for_user(db, user)
    return render_html(
        request,
        "realm.html",
        {"realms": realms, "selected_realm_id": request.session.get(REALM_ID_KEY)},
    )


@router.post("/select")
def select_realm(
    request: Request,
    user: CurrentUser,
    realm: Annotated[int, Form()],
):
    """
    Select the realm to work in.

    Returns:
        Redirect to /home, or back to /realm if the user can't view the realm
    """
    if not user.can_view_realm(realm):
        flash_error(request, "You don't have permission to view that realm.")
        return RedirectResponse("/realm", status_code=303)

    request.session[REALM_ID_KEY] = realm
    logger.info(f"User {user.id} selected realm {realm}")
    return RedirectResponse("/home", status_code=303)
