# =============================================================================
# core/models/authorized_app.py - API Key Model
# =============================================================================
# An authorized app is an API key scoped to one realm.
#
# - device keys may redeem verification codes (POST /api/verify)
# - admin keys may issue verification codes (POST /api/issue)
#
# Only a SHA-256 digest of the key is stored; the raw key is shown once,
# right after creation.
# =============================================================================

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.models.base import Base, TimestampMixin
from core.models.realm import Realm


class APIKeyType(str, Enum):
    DEVICE = "device"
    ADMIN = "admin"


# Characters of the raw key kept for display
API_KEY_PREVIEW_LENGTH = 6


class AuthorizedApp(TimestampMixin, Base):
    __tablename__ = "authorized_apps"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    realm_id: Mapped[int] = mapped_column(Integer, ForeignKey("realms.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    api_key_type: Mapped[str] = mapped_column(String(16), default=APIKeyType.DEVICE.value, nullable=False)
    api_key_preview: Mapped[str] = mapped_column(String(16), nullable=False)
    api_key_digest: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    realm: Mapped[Realm] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"AuthorizedApp(id={self.id!r}, name={self.name!r}, type={self.api_key_type!r})"

    @property
    def disabled(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_device_type(self) -> bool:
        return self.api_key_type == APIKeyType.DEVICE.value

    @property
    def is_admin_type(self) -> bool:
        return self.api_key_type == APIKeyType.ADMIN.value
