# =============================================================================
# app/routers/home.py - Code Issue Page
# =============================================================================
# The console's main page: a form that issues a verification code in the
# current realm. The form posts JSON to /home/issue via AJAX, sending the
# CSRF token in the X-CSRF-Token header.
# =============================================================================

import logging
from datetime import timedelta

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from app.auth.dependencies import CurrentRealm, CurrentUser
from app.config import settings
from app.dependencies import DbDep
from app.render import render_html
from core.models import IssueCodeRequest
from core.services import VerificationCodeService
from lib.utils import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Home"])


@router.get("")
def home(request: Request, realm: CurrentRealm):
    today = utcnow().date()
    return render_html(
        request,
        "home.html",
        {
            "test_types": realm.allowed_test_type_names,
            "max_date": today.isoformat(),
            "min_date": (today - settings.allowed_symptom_age - timedelta(days=1)).isoformat(),
            "code_duration_minutes": realm.code_duration // 60,
            "long_code_duration_hours": realm.long_code_duration // 3600,
        },
    )


@router.post("/issue")
def issue(body: IssueCodeRequest, db: DbDep, user: CurrentUser, realm: CurrentRealm):
    """
    Issue a verification code as the signed-in user.

    Returns:
        JSON with code, longCode and their expiry (string and unix timestamp)
    """
    response = VerificationCodeService.issue(db, realm, body, user=user)
    return JSONResponse(response.model_dump(by_alias=True))
