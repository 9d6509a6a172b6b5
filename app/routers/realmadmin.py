# =============================================================================
# app/routers/realmadmin.py - Realm Settings
# =============================================================================
# Realm admins tune code policy for their realm: allowed test types and
# the length and lifetime of short and long codes.
# =============================================================================

import logging
from typing import Annotated

from fastapi import APIRouter, Form, Request
from fastapi.responses import RedirectResponse
from pydantic import ValidationError

from app.auth.dependencies import CurrentRealm
from app.dependencies import DbDep
from app.exceptions import ValidationFailedError
from app.flash import flash_alert, flash_error
from app.render import render_html
from core.models import TEST_TYPE_NAMES, RealmSettingsForm
from core.services import RealmService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realm Settings"])


@router.get("")
def index(request: Request, realm: CurrentRealm):
    return render_html(request, "realmadmin.html", {"realm": realm, "test_type_names": TEST_TYPE_NAMES})


@router.post("/save")
def save(
    request: Request,
    db: DbDep,
    realm: CurrentRealm,
    name: Annotated[str, Form()] = "",
    region_code: Annotated[str, Form()] = "",
    test_types: Annotated[list[str] | None, Form()] = None,
    abuse_prevention_enabled: Annotated[bool, Form()] = False,
    code_length: Annotated[int, Form()] = 0,
    code_duration_minutes: Annotated[int, Form()] = 0,
    long_code_length: Annotated[int, Form()] = 0,
    long_code_duration_minutes: Annotated[int, Form()] = 0,
    sms_text_template: Annotated[str, Form()] = "",
):
    try:
        form = RealmSettingsForm(
            name=name,
            region_code=region_code,
            test_types=test_types or [],
            abuse_prevention_enabled=abuse_prevention_enabled,
            code_length=code_length,
            code_duration_minutes=code_duration_minutes,
            long_code_length=long_code_length,
            long_code_duration_minutes=long_code_duration_minutes,
            sms_text_template=sms_text_template,
        )
        RealmService.update_settings(db, realm, form)
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))
        flash_error(request, f"Failed to update realm: invalid {fields}")
        return RedirectResponse("/realm/settings", status_code=303)
    except ValidationFailedError as e:
        flash_error(request, e.message)
        return RedirectResponse("/realm/settings", status_code=303)

    flash_alert(request, "Updated realm settings!")
    return RedirectResponse("/realm/settings", status_code=303)
