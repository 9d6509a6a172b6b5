# =============================================================================
# core/models/realm.py - Realm Model
# =============================================================================
# A realm is the tenant boundary: users, API keys, mobile apps and
# verification codes all belong to exactly one realm.
#
# - TestType: bitmask of the diagnosis types a realm may issue codes for
# - Realm: ORM model with code length/duration policy
# - RealmSettingsForm: validated input for the realm settings page
# =============================================================================

from enum import IntFlag

from pydantic import BaseModel, Field
from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.config import settings
from core.models.base import Base, TimestampMixin


class TestType(IntFlag):
    """
    Diagnosis types, stored as a bitmask on the realm.

    The API speaks in lowercase names ("confirmed", "likely", "negative").
    """
    __test__ = False  # not a pytest test class

    CONFIRMED = 1 << 1
    LIKELY = 1 << 2
    NEGATIVE = 1 << 3

    @classmethod
    def from_name(cls, name: str) -> "TestType | None":
        return _TEST_TYPES_BY_NAME.get((name or "").strip().lower())

    @property
    def api_name(self) -> str:
        return self.name.lower()


_TEST_TYPES_BY_NAME = {t.name.lower(): t for t in (TestType.CONFIRMED, TestType.LIKELY, TestType.NEGATIVE)}

ALL_TEST_TYPES = TestType.CONFIRMED | TestType.LIKELY | TestType.NEGATIVE

# API names in display order
TEST_TYPE_NAMES = ["confirmed", "likely", "negative"]

MIN_CODE_LENGTH = 6
MIN_LONG_CODE_LENGTH = 12


class Realm(TimestampMixin, Base):
    __tablename__ = "realms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    region_code: Mapped[str] = mapped_column(String(16), default="", nullable=False)

    allowed_test_types: Mapped[int] = mapped_column(Integer, default=int(ALL_TEST_TYPES), nullable=False)
    abuse_prevention_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    code_length: Mapped[int] = mapped_column(Integer, nullable=False)
    code_duration: Mapped[int] = mapped_column(Integer, nullable=False)  # seconds
    long_code_length: Mapped[int] = mapped_column(Integer, nullable=False)
    long_code_duration: Mapped[int] = mapped_column(Integer, nullable=False)  # seconds

    sms_text_template: Mapped[str] = mapped_column(Text, default="", nullable=False)

    def __repr__(self) -> str:
        return f"Realm(id={self.id!r}, name={self.name!r}, region_code={self.region_code!r})"

    def valid_test_type(self, name: str) -> bool:
        """True if the realm allows issuing codes of the named test type."""
        test_type = TestType.from_name(name)
        if test_type is None:
            return False
        return bool(self.allowed_test_types & test_type)

    @property
    def allowed_test_type_names(self) -> list[str]:
        return [name for name in TEST_TYPE_NAMES if self.valid_test_type(name)]

    def validate(self) -> list[str]:
        """Return human-readable error messages; empty when valid."""
        errors = []
        if not (self.name or "").strip():
            errors.append("name cannot be blank")
        if (self.code_length or 0) < MIN_CODE_LENGTH:
            errors.append(f"code length must be at least {MIN_CODE_LENGTH}")
        if (self.long_code_length or 0) < MIN_LONG_CODE_LENGTH:
            errors.append(f"long code length must be at least {MIN_LONG_CODE_LENGTH}")
        if (self.code_duration or 0) <= 0:
            errors.append("code duration must be positive")
        if (self.long_code_duration or 0) <= 0:
            errors.append("long code duration must be positive")
        if not (self.allowed_test_types or 0) & int(ALL_TEST_TYPES):
            errors.append("at least one test type must be allowed")
        return errors


def new_realm_with_defaults(name: str) -> Realm:
    """Build an unsaved realm using the server-wide code defaults."""
    return Realm(
        name=name,
        region_code="",
        allowed_test_types=int(ALL_TEST_TYPES),
        abuse_prevention_enabled=False,
        code_length=settings.CODE_DIGITS,
        code_duration=settings.CODE_DURATION,
        long_code_length=settings.LONG_CODE_LENGTH,
        long_code_duration=settings.LONG_CODE_DURATION,
        sms_text_template="",
    )


class RealmSettingsForm(BaseModel):
    """
    Fields accepted by POST /realm/settings/save.

    Durations are entered in minutes on the form.
    """
    name: str = Field(..., min_length=1, max_length=255)
    region_code: str = Field(default="", max_length=16)
    test_types: list[str] = Field(default_factory=list)
    abuse_prevention_enabled: bool = False
    code_length: int = Field(..., ge=MIN_CODE_LENGTH, le=20)
    code_duration_minutes: int = Field(..., ge=1, le=60 * 24)
    long_code_length: int = Field(..., ge=MIN_LONG_CODE_LENGTH, le=64)
    long_code_duration_minutes: int = Field(..., ge=1, le=60 * 24 * 14)
    sms_text_template: str = Field(default="", max_length=400)

    @property
    def allowed_test_types(self) -> int:
        mask = 0
        for name in self.test_types:
            test_type = TestType.from_name(name)
            if test_type is not None:
                mask |= test_type
        return int(mask)
