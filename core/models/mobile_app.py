# =============================================================================
# core/models/mobile_app.py - Mobile App Model
# =============================================================================
# Exposure notification apps registered against a realm. Android apps carry
# the signing certificate fingerprint used for app links.
# =============================================================================

import re
from enum import Enum

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from core.models.base import Base, TimestampMixin


class OSType(str, Enum):
    IOS = "ios"
    ANDROID = "android"


# 32 colon separated hex pairs, e.g. "AA:BB:..."
SHA_PATTERN = re.compile(r"^[0-9A-Fa-f]{2}(:[0-9A-Fa-f]{2}){31}$")


class MobileApp(TimestampMixin, Base):
    __tablename__ = "mobile_apps"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    realm_id: Mapped[int] = mapped_column(Integer, ForeignKey("realms.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(String(1024), default="", nullable=False)
    os: Mapped[str] = mapped_column(String(16), nullable=False)
    app_id: Mapped[str] = mapped_column(String(512), nullable=False)
    sha: Mapped[str] = mapped_column(String(128), default="", nullable=False)

    def __repr__(self) -> str:
        return f"MobileApp(id={self.id!r}, name={self.name!r}, os={self.os!r})"

    def validate(self) -> list[str]:
        errors = []
        if not (self.name or "").strip():
            errors.append("name cannot be blank")
        if not (self.app_id or "").strip():
            errors.append("app ID cannot be blank")
        if self.os not in (OSType.IOS.value, OSType.ANDROID.value):
            errors.append("os must be ios or android")
        if self.os == OSType.ANDROID.value and not SHA_PATTERN.match(self.sha or ""):
            errors.append("android apps require a SHA-256 fingerprint")
        return errors
