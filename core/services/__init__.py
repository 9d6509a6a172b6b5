# =============================================================================
# core/services/__init__.py - Service Layer Exports
# =============================================================================

from .realm_service import RealmService
from .user_service import UserService
from .apikey_service import APIKeyService
from .mobile_app_service import MobileAppService
from .verification_code_service import VerificationCodeService

__all__ = [
    "RealmService",
    "UserService",
    "APIKeyService",
    "MobileAppService",
    "VerificationCodeService",
]
