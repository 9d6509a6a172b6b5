# =============================================================================
# tests/test_models.py - Model Tests
# =============================================================================
# Unit tests for the ORM models and request schemas:
# - Test type bitmask and name mapping
# - Realm, user and mobile app validation
# - Realm membership helpers
# - Issue/verify API schemas and their JSON aliases
#
# Run with: pytest tests/test_models.py -v
# =============================================================================

import pytest
from pydantic import ValidationError

from core.models import (
    ALL_TEST_TYPES,
    IssueCodeRequest,
    IssueCodeResponse,
    MobileApp,
    OSType,
    RealmSettingsForm,
    TestType,
    User,
    VerifyCodeRequest,
    new_realm_with_defaults,
)


# =============================================================================
# TestType Tests
# =============================================================================

class TestTestType:
    """Tests for the TestType bitmask."""

    def test_bit_values(self):
        assert int(TestType.CONFIRMED) == 2
        assert int(TestType.LIKELY) == 4
        assert int(TestType.NEGATIVE) == 8
        assert int(ALL_TEST_TYPES) == 14

    def test_from_name_is_case_insensitive(self):
        assert TestType.from_name("Confirmed") == TestType.CONFIRMED
        assert TestType.from_name(" likely ") == TestType.LIKELY
        assert TestType.from_name("positive") is None
        assert TestType.from_name("") is None

    def test_api_name(self):
        assert TestType.NEGATIVE.api_name == "negative"


# =============================================================================
# Realm Tests
# =============================================================================

class TestRealm:
    """Tests for the Realm model."""

    def test_defaults(self):
        realm = new_realm_with_defaults("Narnia")

        assert realm.code_length == 8
        assert realm.code_duration == 900
        assert realm.long_code_length == 16
        assert realm.long_code_duration == 86400
        assert realm.allowed_test_types == int(ALL_TEST_TYPES)
        assert realm.validate() == []

    def test_valid_test_type_respects_bitmask(self):
        realm = new_realm_with_defaults("Wonderland")
        realm.allowed_test_types = int(TestType.LIKELY | TestType.CONFIRMED)

        assert realm.valid_test_type("confirmed")
        assert realm.valid_test_type("LIKELY")
        assert not realm.valid_test_type("negative")
        assert not realm.valid_test_type("bogus")
        assert realm.allowed_test_type_names == ["confirmed", "likely"]

    def test_validate_collects_all_errors(self):
        realm = new_realm_with_defaults("")
        realm.code_length = 4
        realm.long_code_length = 8
        realm.code_duration = 0
        realm.long_code_duration = -1
        realm.allowed_test_types = 0

        errors = realm.validate()

        assert len(errors) == 6
        assert "name cannot be blank" in errors


# =============================================================================
# User Tests
# =============================================================================

class TestUser:
    """Tests for realm membership helpers."""

    def test_add_realm_admin_also_grants_view(self):
        realm = new_realm_with_defaults("Narnia")
        realm.id = 1
        user = User(email="admin@example.com", name="Admin", realms=[], admin_realms=[])

        user.add_realm_admin(realm)

        assert user.can_view_realm(1)
        assert user.can_admin_realm(1)

    def test_add_realm_is_idempotent(self):
        realm = new_realm_with_defaults("Narnia")
        realm.id = 1
        user = User(email="user@example.com", name="User", realms=[], admin_realms=[])

        user.add_realm(realm)
        user.add_realm(realm)

        assert len(user.realms) == 1
        assert not user.can_admin_realm(1)

    def test_remove_realm_drops_admin(self):
        realm = new_realm_with_defaults("Narnia")
        realm.id = 1
        user = User(email="admin@example.com", name="Admin", realms=[], admin_realms=[])
        user.add_realm_admin(realm)

        user.remove_realm(realm)

        assert not user.can_view_realm(1)
        assert not user.can_admin_realm(1)

    def test_no_realm_selected(self):
        user = User(email="user@example.com", name="User", realms=[], admin_realms=[])
        assert not user.can_view_realm(None)
        assert not user.can_admin_realm(None)

    @pytest.mark.parametrize("email,name,valid", [
        ("user@example.com", "User", True),
        ("not-an-email", "User", False),
        ("user@example.com", "  ", False),
    ])
    def test_validate(self, email, name, valid):
        user = User(email=email, name=name)
        assert (user.validate() == []) is valid


# =============================================================================
# MobileApp Tests
# =============================================================================

class TestMobileApp:
    """Tests for mobile app validation."""

    def test_ios_app_needs_no_sha(self):
        app = MobileApp(name="iOS", os=OSType.IOS.value, app_id="ios.example.app", sha="")
        assert app.validate() == []

    def test_android_app_requires_sha(self):
        app = MobileApp(name="Android", os=OSType.ANDROID.value, app_id="android.example.app", sha="")
        assert app.validate() == ["android apps require a SHA-256 fingerprint"]

    def test_android_app_with_sha(self):
        app = MobileApp(
            name="Android",
            os=OSType.ANDROID.value,
            app_id="android.example.app",
            sha=":".join(["AA"] * 32),
        )
        assert app.validate() == []

    def test_short_sha_rejected(self):
        app = MobileApp(
            name="Android",
            os=OSType.ANDROID.value,
            app_id="android.example.app",
            sha=":".join(["AA"] * 31),
        )
        assert app.validate() != []


# =============================================================================
# Schema Tests
# =============================================================================

class TestSchemas:
    """Tests for request and response schemas."""

    def test_issue_request_reads_camel_case(self):
        request = IssueCodeRequest.model_validate({
            "testType": "confirmed",
            "symptomDate": "2020-08-01",
            "tzOffset": -420,
            "externalIssuerID": "abc",
        })

        assert request.test_type == "confirmed"
        assert request.symptom_date == "2020-08-01"
        assert request.test_date == ""
        assert request.tz_offset == -420
        assert request.external_issuer_id == "abc"

    def test_issue_request_rejects_absurd_offset(self):
        with pytest.raises(ValidationError):
            IssueCodeRequest.model_validate({"testType": "confirmed", "tzOffset": 100000})

    def test_issue_response_serializes_aliases(self):
        response = IssueCodeResponse(
            verification_code="12345678",
            long_code="abcdefghijkl0123",
            expires_at="Mon, 01 Jun 2020 00:15:00 UTC",
            expires_at_timestamp=1590970500,
            long_expires_at="Tue, 02 Jun 2020 00:00:00 UTC",
            long_expires_at_timestamp=1591056000,
        )

        data = response.model_dump(by_alias=True)

        assert set(data) == {
            "code", "longCode", "expiresAt", "expiresAtTimestamp", "longExpiresAt", "longExpiresAtTimestamp",
        }
        assert data["code"] == "12345678"

    def test_verify_request_defaults_to_confirmed(self):
        assert VerifyCodeRequest(code="12345678").accept == ["confirmed"]

    def test_realm_settings_form_bitmask(self):
        form = RealmSettingsForm(
            name="Narnia",
            test_types=["confirmed", "negative", "bogus"],
            code_length=8,
            code_duration_minutes=15,
            long_code_length=16,
            long_code_duration_minutes=1440,
        )
        assert form.allowed_test_types == int(TestType.CONFIRMED | TestType.NEGATIVE)
