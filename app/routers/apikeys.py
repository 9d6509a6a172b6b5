# =============================================================================
# app/routers/apikeys.py - API Key Management
# =============================================================================
# Realm admins create, rename and toggle the API keys of their realm:
# - device keys redeem codes via /api/verify
# - admin keys issue codes via /api/issue
#
# Browsers submit PATCH through a POST form with `_method=PATCH`
# (see MutateMethodMiddleware).
# =============================================================================

import logging
from typing import Annotated

from fastapi import APIRouter, Form, Request
from fastapi.responses import RedirectResponse

from app.auth.dependencies import CurrentRealm
from app.dependencies import DbDep
from app.exceptions import ValidationFailedError
from app.flash import flash_alert, flash_error
from app.render import render_html
from core.models import APIKeyType
from core.services import APIKeyService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["API Keys"])

# Session slot holding a freshly created raw key until its page is shown
REVEAL_SESSION_KEY = "apikey_reveal"

API_KEY_TYPES = [t.value for t in APIKeyType]


@router.get("")
def index(request: Request, db: DbDep, realm: CurrentRealm):
    apps = APIKeyService.list_authorized_apps(db, realm)
    return render_html(request, "apikeys/index.html", {"apps": apps})


@router.post("")
def create(
    request: Request,
    db: DbDep,
    realm: CurrentRealm,
    name: Annotated[str, Form()] = "",
    api_key_type: Annotated[str, Form(alias="type")] = APIKeyType.DEVICE.value,
):
    """
    Create an API key.

    The raw key is only available now, so it is parked in the session and
    shown once on the key's page.
    """
    try:
        app, raw_key = APIKeyService.create_authorized_app(db, realm, name, api_key_type)
    except ValidationFailedError as e:
        flash_error(request, e.message)
        return render_html(
            request,
            "apikeys/new.html",
            {"name": name, "api_key_type": api_key_type, "types": API_KEY_TYPES},
            status_code=422,
        )

    request.session[REVEAL_SESSION_KEY] = {"id": app.id, "key": raw_key}
    flash_alert(request, f"Created API key {app.name}")
    return RedirectResponse(f"/apikeys/{app.id}", status_code=303)


@router.get("/new")
def new(request: Request):
    return render_html(
        request,
        "apikeys/new.html",
        {"name": "", "api_key_type": APIKeyType.DEVICE.value, "types": API_KEY_TYPES},
    )


@router.get("/{app_id}/edit")
def edit(request: Request, db: DbDep, realm: CurrentRealm, app_id: int):
    app = APIKeyService.find_authorized_app(db, realm, app_id)
    return render_html(request, "apikeys/edit.html", {"app": app})


@router.get("/{app_id}")
def show(request: Request, db: DbDep, realm: CurrentRealm, app_id: int):
    app = APIKeyService.find_authorized_app(db, realm, app_id)

    raw_key = None
    reveal = request.session.get(REVEAL_SESSION_KEY)
    if reveal and reveal.get("id") == app.id:
        raw_key = reveal.get("key")
        request.session.pop(REVEAL_SESSION_KEY, None)

    return render_html(request, "apikeys/show.html", {"app": app, "raw_key": raw_key})


@router.patch("/{app_id}")
def update(
    request: Request,
    db: DbDep,
    realm: CurrentRealm,
    app_id: int,
    name: Annotated[str, Form()] = "",
):
    try:
        app = APIKeyService.update_authorized_app(db, realm, app_id, name)
    except ValidationFailedError as e:
        flash_error(request, e.message)
        return RedirectResponse(f"/apikeys/{app_id}/edit", status_code=303)

    flash_alert(request, f"Updated API key {app.name}")
    return RedirectResponse(f"/apikeys/{app.id}", status_code=303)


@router.patch("/{app_id}/disable")
def disable(request: Request, db: DbDep, realm: CurrentRealm, app_id: int):
    app = APIKeyService.disable_authorized_app(db, realm, app_id)
    flash_alert(request, f"Disabled API key {app.name}")
    return RedirectResponse("/apikeys", status_code=303)


@router.patch("/{app_id}/enable")
def enable(request: Request, db: DbDep, realm: CurrentRealm, app_id: int):
    app = APIKeyService.enable_authorized_app(db, realm, app_id)
    flash_alert(request, f"Enabled API key {app.name}")
    return RedirectResponse("/apikeys", status_code=303)
