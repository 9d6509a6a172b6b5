# =============================================================================
# tests/test_verification_codes.py - Code Issue & Redeem Tests
# =============================================================================
# Service level tests against an in-memory database:
# - Code generation and collision retries
# - Issue request validation (test types, dates, tzOffset, phone)
# - Redeeming short and long codes exactly once, including under contention
#
# Run with: pytest tests/test_verification_codes.py -v
# =============================================================================

import threading
from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

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
from core.models import Base, IssueCodeRequest, TestType, Token, VerificationCode, new_realm_with_defaults
from core.services import RealmService, VerificationCodeService
from core.services import verification_code_service
from lib.utils import utcnow

ALL_TYPES = {"confirmed", "likely", "negative"}

FIXED_NOW = datetime(2024, 6, 10, 23, 0, 0)


def make_code(realm, code="11223344", long_code="longcode00000001", **overrides) -> VerificationCode:
    now = utcnow()
    fields = dict(
        realm_id=realm.id,
        code=code,
        long_code=long_code,
        test_type="confirmed",
        symptom_date=(now - timedelta(days=2)).date(),
        test_date=(now - timedelta(days=2)).date(),
        expires_at=now + timedelta(minutes=15),
        long_expires_at=now + timedelta(hours=24),
    )
    fields.update(overrides)
    return VerificationCode(**fields)


@pytest.fixture
def frozen_now(monkeypatch):
    """Pin the service clock to 2024-06-10 23:00 UTC."""
    monkeypatch.setattr(verification_code_service, "utcnow", lambda: FIXED_NOW)
    return FIXED_NOW


# =============================================================================
# Generation Tests
# =============================================================================

class TestGeneration:
    """Tests for random code generation."""

    def test_generate_code_is_numeric(self):
        code = VerificationCodeService.generate_code(8)
        assert len(code) == 8
        assert code.isdigit()

    def test_generate_long_code_is_lowercase_alphanumeric(self):
        code = VerificationCodeService.generate_long_code(16)
        assert len(code) == 16
        assert code == code.lower()
        assert code.isalnum()


# =============================================================================
# Save Tests
# =============================================================================

class TestSaveVerificationCode:
    """Tests for validation before a code is stored."""

    def test_saves_valid_code(self, db, narnia):
        saved = VerificationCodeService.save_verification_code(db, make_code(narnia), timedelta(days=14))
        assert saved.id is not None
        assert saved.claimed is False

    def test_rejects_short_code(self, db, narnia):
        with pytest.raises(ValidationFailedError) as exc_info:
            VerificationCodeService.save_verification_code(db, make_code(narnia, code="123"), timedelta(days=14))
        assert "code must be at least 6 characters" in exc_info.value.errors

    def test_rejects_unknown_test_type(self, db, narnia):
        with pytest.raises(ValidationFailedError):
            VerificationCodeService.save_verification_code(
                db, make_code(narnia, test_type="positive"), timedelta(days=14)
            )

    def test_rejects_old_symptom_date(self, db, narnia):
        old = (utcnow() - timedelta(days=30)).date()
        with pytest.raises(ValidationFailedError):
            VerificationCodeService.save_verification_code(
                db, make_code(narnia, symptom_date=old), timedelta(days=14)
            )

    def test_accepts_old_symptom_date_within_max_age(self, db, narnia):
        old = (utcnow() - timedelta(days=20)).date()
        saved = VerificationCodeService.save_verification_code(
            db, make_code(narnia, symptom_date=old), timedelta(hours=672)
        )
        assert saved.symptom_date == old

    def test_rejects_expired_code(self, db, narnia):
        past = utcnow() - timedelta(minutes=1)
        with pytest.raises(ValidationFailedError) as exc_info:
            VerificationCodeService.save_verification_code(
                db, make_code(narnia, expires_at=past), timedelta(days=14)
            )
        assert "code is already expired" in exc_info.value.errors


# =============================================================================
# Issue Tests
# =============================================================================

class TestIssue:
    """Tests for VerificationCodeService.issue()."""

    def test_issue_returns_both_codes(self, db, narnia, admin_user):
        request = IssueCodeRequest(test_type="Confirmed")

        response = VerificationCodeService.issue(db, narnia, request, user=admin_user)

        assert len(response.verification_code) == narnia.code_length
        assert response.verification_code.isdigit()
        assert len(response.long_code) == narnia.long_code_length
        assert response.expires_at.endswith(" UTC")
        assert response.long_expires_at_timestamp - response.expires_at_timestamp == (
            narnia.long_code_duration - narnia.code_duration
        )

        stored = db.query(VerificationCode).one()
        assert stored.code == response.verification_code
        assert stored.test_type == "confirmed"
        assert stored.issuing_user_id == admin_user.id
        assert stored.issuing_app_id is None

    def test_issue_formats_expiry(self, db, narnia, frozen_now):
        response = VerificationCodeService.issue(db, narnia, IssueCodeRequest(test_type="confirmed"))

        assert response.expires_at == "Mon, 10 Jun 2024 23:15:00 UTC"
        assert response.expires_at_timestamp == 1718061300

    def test_issue_rejects_disallowed_test_type(self, db, narnia):
        narnia.allowed_test_types = int(TestType.CONFIRMED)
        RealmService.save_realm(db, narnia)

        with pytest.raises(IssueCodeError, match="unsupported test type"):
            VerificationCodeService.issue(db, narnia, IssueCodeRequest(test_type="likely"))

    def test_issue_rejects_phone(self, db, narnia):
        request = IssueCodeRequest(test_type="confirmed", phone="+15555550100")
        with pytest.raises(IssueCodeError, match="SMS"):
            VerificationCodeService.issue(db, narnia, request)

    def test_issue_rejects_bad_date_format(self, db, narnia):
        request = IssueCodeRequest(test_type="confirmed", symptom_date="06/01/2024")
        with pytest.raises(IssueCodeError, match="symptomDate"):
            VerificationCodeService.issue(db, narnia, request)

    def test_issue_rejects_future_date(self, db, narnia, frozen_now):
        request = IssueCodeRequest(test_type="confirmed", test_date="2024-06-11")
        with pytest.raises(IssueCodeError, match="testDate"):
            VerificationCodeService.issue(db, narnia, request)

    def test_tz_offset_moves_local_today(self, db, narnia, frozen_now):
        # 23:00 UTC plus one hour east is already June 11th locally
        request = IssueCodeRequest(test_type="confirmed", test_date="2024-06-11", tz_offset=60)

        VerificationCodeService.issue(db, narnia, request)

        assert db.query(VerificationCode).one().test_date == date(2024, 6, 11)

    def test_issue_accepts_oldest_allowed_date(self, db, narnia, frozen_now):
        # Seven hours west it is still June 10th, so 14 days back is May 27th
        request = IssueCodeRequest(test_type="confirmed", symptom_date="2024-05-27", tz_offset=-420)

        VerificationCodeService.issue(db, narnia, request)

        assert db.query(VerificationCode).one().symptom_date == date(2024, 5, 27)

    def test_issue_rejects_too_old_date(self, db, narnia, frozen_now):
        request = IssueCodeRequest(test_type="confirmed", symptom_date="2024-05-26")
        with pytest.raises(IssueCodeError, match="on/after 2024-05-27"):
            VerificationCodeService.issue(db, narnia, request)

    def test_issue_records_external_id(self, db, narnia):
        request = IssueCodeRequest(test_type="confirmed", external_issuer_id="case-1234")
        VerificationCodeService.issue(db, narnia, request)
        assert db.query(VerificationCode).one().issuing_external_id == "case-1234"


# =============================================================================
# Collision Tests
# =============================================================================

class TestCollisions:
    """Tests for retrying on duplicate codes."""

    def test_retries_until_unique(self, db, narnia, monkeypatch):
        VerificationCodeService.save_verification_code(
            db, make_code(narnia, code="00000001", long_code="aaaaaaaaaaaaaaaa"), timedelta(days=14)
        )
        codes = iter(["00000001", "00000001", "00000002"])
        monkeypatch.setattr(VerificationCodeService, "generate_code", staticmethod(lambda digits: next(codes)))

        issued = VerificationCodeService.issue_code(db, narnia, "confirmed", retry_count=3)

        assert issued.code == "00000002"
        assert db.query(VerificationCode).count() == 2

    def test_gives_up_after_retry_count(self, db, narnia, monkeypatch):
        VerificationCodeService.save_verification_code(
            db, make_code(narnia, code="00000001", long_code="aaaaaaaaaaaaaaaa"), timedelta(days=14)
        )
        monkeypatch.setattr(VerificationCodeService, "generate_code", staticmethod(lambda digits: "00000001"))

        with pytest.raises(CodeCollisionError) as exc_info:
            VerificationCodeService.issue_code(db, narnia, "confirmed", retry_count=4)

        assert exc_info.value.details["attempts"] == 4
        assert db.query(VerificationCode).count() == 1


# =============================================================================
# Redeem Tests
# =============================================================================

class TestVerifyCodeAndIssueToken:
    """Tests for redeeming codes."""

    def test_short_code_issues_token(self, db, narnia):
        VerificationCodeService.save_verification_code(db, make_code(narnia), timedelta(days=14))

        token = VerificationCodeService.verify_code_and_issue_token(
            db, narnia.id, "11223344", ALL_TYPES, timedelta(hours=24)
        )

        assert token.token_id
        assert token.test_type == "confirmed"
        assert token.used is False
        assert db.query(VerificationCode).one().claimed is True
        assert db.query(Token).count() == 1

    def test_code_can_only_be_used_once(self, db, narnia):
        VerificationCodeService.save_verification_code(db, make_code(narnia), timedelta(days=14))
        VerificationCodeService.verify_code_and_issue_token(db, narnia.id, "11223344", ALL_TYPES, timedelta(hours=1))

        with pytest.raises(VerificationCodeUsedError):
            VerificationCodeService.verify_code_and_issue_token(
                db, narnia.id, "longcode00000001", ALL_TYPES, timedelta(hours=1)
            )
        assert db.query(Token).count() == 1

    def test_unknown_code(self, db, narnia):
        with pytest.raises(VerificationCodeNotFoundError):
            VerificationCodeService.verify_code_and_issue_token(db, narnia.id, "99999999", ALL_TYPES, timedelta(hours=1))

    def test_code_from_other_realm(self, db, narnia, wonderland):
        VerificationCodeService.save_verification_code(db, make_code(narnia), timedelta(days=14))
        with pytest.raises(VerificationCodeNotFoundError):
            VerificationCodeService.verify_code_and_issue_token(
                db, wonderland.id, "11223344", ALL_TYPES, timedelta(hours=1)
            )

    def test_short_and_long_expiry_are_separate(self, db, narnia):
        code = VerificationCodeService.save_verification_code(db, make_code(narnia), timedelta(days=14))
        # Expire only the short code
        code.expires_at = utcnow() - timedelta(minutes=1)
        db.commit()

        with pytest.raises(VerificationCodeExpiredError):
            VerificationCodeService.verify_code_and_issue_token(db, narnia.id, "11223344", ALL_TYPES, timedelta(hours=1))

        token = VerificationCodeService.verify_code_and_issue_token(
            db, narnia.id, "longcode00000001", ALL_TYPES, timedelta(hours=1)
        )
        assert token.realm_id == narnia.id

    def test_unsupported_test_type(self, db, narnia):
        VerificationCodeService.save_verification_code(
            db, make_code(narnia, test_type="likely"), timedelta(days=14)
        )

        with pytest.raises(UnsupportedTestTypeError) as exc_info:
            VerificationCodeService.verify_code_and_issue_token(
                db, narnia.id, "11223344", {"confirmed"}, timedelta(hours=1)
            )

        assert exc_info.value.status_code == 412
        assert db.query(VerificationCode).one().claimed is False

    def test_parse_accept_types(self):
        assert VerificationCodeService.parse_accept_types(["Confirmed", "likely"]) == {"confirmed", "likely"}
        with pytest.raises(VerificationCodeError):
            VerificationCodeService.parse_accept_types(["positive"])


# =============================================================================
# Concurrent Redeem Tests
# =============================================================================

class TestConcurrentRedeem:
    """Two devices racing to redeem the same code against a shared database."""

    CODES = 20

    def test_each_code_redeems_exactly_once(self, tmp_path):
        # File backed so each thread gets its own connection and transaction
        engine = create_engine(
            f"sqlite:///{tmp_path / 'redeem.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        Base.metadata.create_all(engine)
        make_session = sessionmaker(bind=engine, expire_on_commit=False)

        try:
            with make_session() as setup:
                realm = RealmService.save_realm(setup, new_realm_with_defaults("Narnia"))
                for i in range(self.CODES):
                    VerificationCodeService.save_verification_code(
                        setup,
                        make_code(realm, code=f"{i:08d}", long_code=f"longcode{i:08d}"),
                        timedelta(days=14),
                    )

            for i in range(self.CODES):
                barrier = threading.Barrier(2)
                outcomes = []

                def redeem(code=f"{i:08d}"):
                    with make_session() as session:
                        barrier.wait()
                        try:
                            VerificationCodeService.verify_code_and_issue_token(
                                session, realm.id, code, ALL_TYPES, timedelta(hours=1)
                            )
                            outcomes.append("token")
                        except VerificationCodeUsedError:
                            outcomes.append("used")

                threads = [threading.Thread(target=redeem) for _ in range(2)]
                for thread in threads:
                    thread.start()
                for thread in threads:
                    thread.join()

                assert sorted(outcomes) == ["token", "used"], f"code {i:08d}: {outcomes}"

            with make_session() as check:
                assert check.query(Token).count() == self.CODES
                assert check.query(VerificationCode).filter(VerificationCode.claimed.is_(False)).count() == 0
        finally:
            engine.dispose()
