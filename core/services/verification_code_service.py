# =============================================================================
# core/services/verification_code_service.py - Code Issue & Redeem Logic
# =============================================================================
# Handles the verification code lifecycle:
# - issue(): validate an issue request and generate a unique code pair
# - verify_code_and_issue_token(): redeem a code for a token, exactly once
#
# Both the console (/home/issue) and the admin API (/api/issue) go through
# issue(); only the issuer recorded on the code differs.
# =============================================================================

import logging
import secrets
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.exceptions import (
    CodeCollisionError,
    IssueCodeError,
    UnsupportedTestTypeError,
    ValidationFailedError,
    VerificationCodeError,
    VerificationCodeExpiredError,
    VerificationCodeNotFoundError,
    VerificationCodeUsedError,
)
from core.models import (
    AuthorizedApp,
    IssueCodeRequest,
    IssueCodeResponse,
    Realm,
    TestType,
    Token,
    User,
    VerificationCode,
)
from core.models.realm import MIN_CODE_LENGTH
from lib.utils import random_alphanumeric, random_digits, utcnow

logger = logging.getLogger(__name__)

# Format of the human readable expiry strings in issue responses
EXPIRY_FORMAT = "%a, %d %b %Y %H:%M:%S UTC"

# Bytes of randomness in a token ID
TOKEN_ID_BYTES = 32


def _timestamp(value: datetime) -> int:
    """Unix timestamp of a naive UTC datetime."""
    return int(value.replace(tzinfo=timezone.utc).timestamp())


def _parse_date(value: str, field: str) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise IssueCodeError(f"{field} must be a date in YYYY-MM-DD format")


class VerificationCodeService:
    """Service for issuing and redeeming verification codes."""

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------

    @staticmethod
    def generate_code(digits: int) -> str:
        """Random numeric short code, leading zeros kept."""
        return random_digits(digits)

    @staticmethod
    def generate_long_code(length: int) -> str:
        """Random lowercase alphanumeric long code."""
        return random_alphanumeric(length)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    @staticmethod
    def save_verification_code(
        db: Session,
        verification_code: VerificationCode,
        max_age: timedelta | None = None,
    ) -> VerificationCode:
        """
        Validate and persist a verification code.

        Args:
            db: Database session
            verification_code: New code
            max_age: Oldest symptom date allowed (defaults to MAX_CODE_AGE)

        Returns:
            The saved code

        Raises:
            ValidationFailedError: If the code is malformed, already expired
                or carries a symptom date older than max_age
            IntegrityError: If the code or long code is already taken
        """
        if max_age is None:
            max_age = timedelta(seconds=settings.MAX_CODE_AGE)

        now = utcnow()
        errors = []
        if len(verification_code.code or "") < MIN_CODE_LENGTH:
            errors.append(f"code must be at least {MIN_CODE_LENGTH} characters")
        if TestType.from_name(verification_code.test_type) is None:
            errors.append(f"invalid test type: {verification_code.test_type}")
        if verification_code.symptom_date is not None:
            min_date = (now - max_age).date()
            if verification_code.symptom_date < min_date:
                errors.append(f"symptom date cannot be older than {min_date.isoformat()}")
        if verification_code.is_expired(now) or verification_code.is_long_expired(now):
            errors.append("code is already expired")
        if errors:
            raise ValidationFailedError("verification code", errors)

        db.add(verification_code)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise
        return verification_code

    @staticmethod
    def issue_code(
        db: Session,
        realm: Realm,
        test_type: str,
        symptom_date: date | None = None,
        test_date: date | None = None,
        issuing_user: User | None = None,
        issuing_app: AuthorizedApp | None = None,
        external_id: str = "",
        max_age: timedelta | None = None,
        retry_count: int | None = None,
    ) -> VerificationCode:
        """
        Generate and save a code pair for the realm.

        Codes are random, so a collision with an existing code is possible;
        a fresh pair is generated until one saves or the retries run out.

        Raises:
            CodeCollisionError: If no unique pair was found in retry_count attempts
            ValidationFailedError: If the code fails validation
        """
        if retry_count is None:
            retry_count = settings.COLLISION_RETRY_COUNT

        for attempt in range(1, retry_count + 1):
            now = utcnow()
            verification_code = VerificationCode(
                realm_id=realm.id,
                code=VerificationCodeService.generate_code(realm.code_length),
                long_code=VerificationCodeService.generate_long_code(realm.long_code_length),
                claimed=False,
                test_type=test_type,
                symptom_date=symptom_date,
                test_date=test_date,
                expires_at=now + timedelta(seconds=realm.code_duration),
                long_expires_at=now + timedelta(seconds=realm.long_code_duration),
                issuing_user_id=issuing_user.id if issuing_user is not None else None,
                issuing_app_id=issuing_app.id if issuing_app is not None else None,
                issuing_external_id=external_id or "",
            )
            try:
                return VerificationCodeService.save_verification_code(db, verification_code, max_age)
            except IntegrityError:
                logger.warning(f"Code collision in realm {realm.id} (attempt {attempt}/{retry_count})")

        raise CodeCollisionError(retry_count)

    # -------------------------------------------------------------------------
    # Issue
    # -------------------------------------------------------------------------

    @staticmethod
    def issue(
        db: Session,
        realm: Realm,
        request: IssueCodeRequest,
        user: User | None = None,
        app: AuthorizedApp | None = None,
    ) -> IssueCodeResponse:
        """
        Validate an issue request and create a code.

        Args:
            db: Database session
            realm: Realm the code belongs to
            request: Parsed request body
            user: Issuing console user (console requests)
            app: Issuing admin API key (API requests)

        Returns:
            IssueCodeResponse with both codes and their expiry

        Raises:
            IssueCodeError: If the request is rejected
            CodeCollisionError: If no unique code could be generated
        """
        test_type = request.test_type.strip().lower()
        if not realm.valid_test_type(test_type):
            raise IssueCodeError(f"unsupported test type: {request.test_type}")

        if request.phone:
            raise IssueCodeError("SMS is not configured for this realm")

        symptom_date = _parse_date(request.symptom_date, "symptomDate")
        test_date = _parse_date(request.test_date, "testDate")

        # tzOffset is minutes east of UTC, so "today" is the caller's local date
        today = (utcnow() + timedelta(minutes=request.tz_offset)).date()
        min_date = today - settings.allowed_symptom_age
        for field, value in (("symptomDate", symptom_date), ("testDate", test_date)):
            if value is not None and not (min_date <= value <= today):
                raise IssueCodeError(
                    f"{field} must be on/after {min_date.isoformat()} and on/before {today.isoformat()}"
                )

        # Local today can trail UTC by a day, so allow one extra day when saving
        max_age = settings.allowed_symptom_age + timedelta(days=1)

        verification_code = VerificationCodeService.issue_code(
            db,
            realm,
            test_type=test_type,
            symptom_date=symptom_date,
            test_date=test_date,
            issuing_user=user,
            issuing_app=app,
            external_id=request.external_issuer_id,
            max_age=max_age,
        )

        issuer = f"user {user.id}" if user is not None else f"app {app.id}" if app is not None else "unknown"
        logger.info(f"Issued {test_type} code {verification_code.id} in realm {realm.id} by {issuer}")

        return IssueCodeResponse(
            verification_code=verification_code.code,
            long_code=verification_code.long_code,
            expires_at=verification_code.expires_at.strftime(EXPIRY_FORMAT),
            expires_at_timestamp=_timestamp(verification_code.expires_at),
            long_expires_at=verification_code.long_expires_at.strftime(EXPIRY_FORMAT),
            long_expires_at_timestamp=_timestamp(verification_code.long_expires_at),
        )

    # -------------------------------------------------------------------------
    # Redeem
    # -------------------------------------------------------------------------

    @staticmethod
    def parse_accept_types(names: list[str]) -> set[str]:
        """
        Normalize the accept list of a verify request.

        Raises:
            VerificationCodeError: If a name isn't a known test type
        """
        accept = set()
        for name in names:
            test_type = TestType.from_name(name)
            if test_type is None:
                raise VerificationCodeError(
                    message=f"invalid accept type: {name}",
                    code="INVALID_ACCEPT_TYPE",
                    status_code=400,
                )
            accept.add(test_type.api_name)
        return accept

    @staticmethod
    def verify_code_and_issue_token(
        db: Session,
        realm_id: int,
        code: str,
        accept_types: set[str],
        expire_after: timedelta,
    ) -> Token:
        """
        Redeem a short or long code for a token in a single transaction.

        Args:
            db: Database session
            realm_id: Realm of the redeeming API key
            code: Short or long code
            accept_types: Test type names the caller accepts
            expire_after: Lifetime of the issued token

        Returns:
            The new token

        Raises:
            VerificationCodeNotFoundError: No such code in the realm
            VerificationCodeUsedError: The code was already redeemed
            VerificationCodeExpiredError: The form of the code used has expired
            UnsupportedTestTypeError: The code's test type isn't accepted
        """
        now = utcnow()
        try:
            stmt = (
                select(VerificationCode)
                .where(VerificationCode.realm_id == realm_id)
                .where(or_(VerificationCode.code == code, VerificationCode.long_code == code))
                .with_for_update()
            )
            verification_code = db.scalars(stmt).first()
            if verification_code is None:
                raise VerificationCodeNotFoundError()
            if verification_code.claimed:
                raise VerificationCodeUsedError()

            # Each form of the code has its own expiry
            if code == verification_code.code:
                expired = verification_code.is_expired(now)
            else:
                expired = verification_code.is_long_expired(now)
            if expired:
                raise VerificationCodeExpiredError()

            if verification_code.test_type not in accept_types:
                raise UnsupportedTestTypeError(verification_code.test_type)

            # Claim only if still unclaimed; row locks aren't available on every
            # backend, so the conditional update decides which redeemer wins
            claim = (
                update(VerificationCode)
                .where(VerificationCode.id == verification_code.id)
                .where(VerificationCode.claimed.is_(False))
                .values(claimed=True)
            )
            if db.execute(claim).rowcount != 1:
                raise VerificationCodeUsedError()

            token = Token(
                token_id=secrets.token_urlsafe(TOKEN_ID_BYTES),
                realm_id=realm_id,
                test_type=verification_code.test_type,
                symptom_date=verification_code.symptom_date,
                test_date=verification_code.test_date,
                used=False,
                expires_at=now + expire_after,
            )
            db.add(token)
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(f"Redeemed code {verification_code.id} for token {token.id} in realm {realm_id}")
        return token
