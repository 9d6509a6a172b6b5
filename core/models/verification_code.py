# =============================================================================
# core/models/verification_code.py - Verification Codes and Tokens
# =============================================================================
# These models cover the code lifecycle:
# - VerificationCode: issued by a user (console) or an app (admin API key)
# - Token: created when a device redeems a code (device API key)
# - IssueCodeRequest / IssueCodeResponse: issue API contract
# - VerifyCodeRequest / VerifyCodeResponse: redeem API contract
#
# Each code has two forms: a short numeric code read out over the phone,
# and a long alphanumeric code suited to links. Either may be redeemed
# exactly once.
# =============================================================================

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from core.models.base import Base
from lib.utils import utcnow


class VerificationCode(Base):
    __tablename__ = "verification_codes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    realm_id: Mapped[int] = mapped_column(Integer, ForeignKey("realms.id", ondelete="CASCADE"), nullable=False, index=True)

    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    long_code: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    claimed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    test_type: Mapped[str] = mapped_column(String(16), nullable=False)
    symptom_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    test_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    long_expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # Issued from the console (user) or through an admin API key (app);
    # the external ID is an opaque audit reference supplied by the caller
    issuing_user_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    issuing_app_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("authorized_apps.id", ondelete="SET NULL"), nullable=True)
    issuing_external_id: Mapped[str] = mapped_column(String(255), default="", nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"VerificationCode(id={self.id!r}, realm_id={self.realm_id!r}, claimed={self.claimed!r})"

    def is_expired(self, now: datetime | None = None) -> bool:
        """True once the short code has expired."""
        return (now or utcnow()) > self.expires_at

    def is_long_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) > self.long_expires_at


class Token(Base):
    __tablename__ = "tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token_id: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    realm_id: Mapped[int] = mapped_column(Integer, ForeignKey("realms.id", ondelete="CASCADE"), nullable=False, index=True)
    test_type: Mapped[str] = mapped_column(String(16), nullable=False)
    symptom_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    test_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"Token(id={self.id!r}, realm_id={self.realm_id!r}, used={self.used!r})"


# =============================================================================
# API Schemas
# =============================================================================

class IssueCodeRequest(BaseModel):
    """
    Body of POST /home/issue and POST /api/issue.

    Dates are ISO (YYYY-MM-DD) in the caller's local time zone;
    tzOffset is the caller's offset from UTC in minutes east.

    Example:
        {"testType": "confirmed", "symptomDate": "2020-08-01", "tzOffset": -420}
    """
    model_config = ConfigDict(populate_by_name=True)

    test_type: str = Field(..., alias="testType")
    symptom_date: str = Field(default="", alias="symptomDate")
    test_date: str = Field(default="", alias="testDate")
    tz_offset: float = Field(default=0, alias="tzOffset", ge=-14 * 60, le=14 * 60)
    phone: str = Field(default="")
    external_issuer_id: str = Field(default="", alias="externalIssuerID", max_length=255)


class IssueCodeResponse(BaseModel):
    """Body returned for a successfully issued code."""
    model_config = ConfigDict(populate_by_name=True)

    verification_code: str = Field(..., serialization_alias="code")
    long_code: str = Field(..., serialization_alias="longCode")
    expires_at: str = Field(..., serialization_alias="expiresAt")
    expires_at_timestamp: int = Field(..., serialization_alias="expiresAtTimestamp")
    long_expires_at: str = Field(..., serialization_alias="longExpiresAt")
    long_expires_at_timestamp: int = Field(..., serialization_alias="longExpiresAtTimestamp")


class VerifyCodeRequest(BaseModel):
    """Body of POST /api/verify."""
    code: str = Field(..., min_length=1, max_length=128)
    accept: list[str] = Field(default_factory=lambda: ["confirmed"])


class VerifyCodeResponse(BaseModel):
    """Body returned when a code is redeemed."""
    model_config = ConfigDict(populate_by_name=True)

    test_type: str = Field(..., serialization_alias="testtype")
    symptom_date: str = Field(default="", serialization_alias="symptomDate")
    test_date: str = Field(default="", serialization_alias="testDate")
    token: str
