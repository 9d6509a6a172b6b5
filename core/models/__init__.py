# =============================================================================
# core/models/ - ORM Models and Schemas
# =============================================================================
# This package contains the SQLAlchemy tables and the Pydantic schemas that
# validate what the console and API accept:
# - base.py: Declarative base and realm membership tables
# - realm.py: Realm (tenant) and test type bitmask
# - user.py: Console users and their realm grants
# - authorized_app.py: API keys
# - mobile_app.py: Registered exposure notification apps
# - verification_code.py: Codes, tokens and the issue/verify contracts
# =============================================================================

from .base import Base, admin_realms, user_realms
from .realm import (
    ALL_TEST_TYPES,
    TEST_TYPE_NAMES,
    Realm,
    RealmSettingsForm,
    TestType,
    new_realm_with_defaults,
)
from .user import User, UserCreateForm
from .authorized_app import APIKeyType, AuthorizedApp
from .mobile_app import MobileApp, OSType
from .verification_code import (
    IssueCodeRequest,
    IssueCodeResponse,
    Token,
    VerificationCode,
    VerifyCodeRequest,
    VerifyCodeResponse,
)

__all__ = [
    # Base
    "Base",
    "admin_realms",
    "user_realms",
    # Realms
    "ALL_TEST_TYPES",
    "TEST_TYPE_NAMES",
    "Realm",
    "RealmSettingsForm",
    "TestType",
    "new_realm_with_defaults",
    # Users
    "User",
    "UserCreateForm",
    # API keys
    "APIKeyType",
    "AuthorizedApp",
    # Mobile apps
    "MobileApp",
    "OSType",
    # Codes
    "IssueCodeRequest",
    "IssueCodeResponse",
    "Token",
    "VerificationCode",
    "VerifyCodeRequest",
    "VerifyCodeResponse",
]
