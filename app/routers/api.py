# =============================================================================
# app/routers/api.py - Device & Admin API
# =============================================================================
# JSON API authenticated with an X-API-Key header instead of a session:
# - POST /api/issue: issue a code (admin keys)
# - POST /api/verify: redeem a code for a token (device keys)
#
# Errors are returned as {"error": "..."} with 4xx status codes.
# =============================================================================

import logging
from datetime import timedelta

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from app.auth.dependencies import CurrentApp
from app.config import settings
from app.dependencies import DbDep
from app.exceptions import APIKeyError
from core.models import IssueCodeRequest, VerifyCodeRequest, VerifyCodeResponse
from core.services import VerificationCodeService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["API"])


@router.post("/issue")
def issue(body: IssueCodeRequest, db: DbDep, app: CurrentApp):
    """
    Issue a verification code on behalf of an admin API key.

    Example:
        curl -X POST /api/issue -H "X-API-Key: ..." \\
          -d '{"testType": "confirmed", "symptomDate": "2020-08-01", "tzOffset": 0}'
    """
    if not app.is_admin_type:
        raise APIKeyError("API key is not authorized to issue codes")

    response = VerificationCodeService.issue(db, app.realm, body, app=app)
    return JSONResponse(response.model_dump(by_alias=True))


@router.post("/verify")
def verify(body: VerifyCodeRequest, db: DbDep, app: CurrentApp):
    """
    Redeem a short or long code for a verification token.

    Returns:
        {"testtype", "symptomDate", "testDate", "token"}
    """
    if not app.is_device_type:
        raise APIKeyError("API key is not authorized to verify codes")

    accept = VerificationCodeService.parse_accept_types(body.accept)
    token = VerificationCodeService.verify_code_and_issue_token(
        db,
        realm_id=app.realm_id,
        code=body.code.strip(),
        accept_types=accept,
        expire_after=timedelta(seconds=settings.VERIFICATION_TOKEN_DURATION),
    )

    response = VerifyCodeResponse(
        test_type=token.test_type,
        symptom_date=token.symptom_date.isoformat() if token.symptom_date else "",
        test_date=token.test_date.isoformat() if token.test_date else "",
        token=token.token_id,
    )
    return JSONResponse(response.model_dump(by_alias=True))
