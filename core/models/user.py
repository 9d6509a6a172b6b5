# =============================================================================
# core/models/user.py - User Model
# =============================================================================
# Console users. Authentication is delegated to Firebase; this table only
# records who may see and administer which realms.
# =============================================================================

from datetime import datetime

from pydantic import BaseModel, Field
from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.models.base import Base, TimestampMixin, admin_realms, user_realms
from core.models.realm import Realm


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    system_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Last time the session was checked against Firebase for revocation
    last_revoke_check: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    realms: Mapped[list[Realm]] = relationship(secondary=user_realms, lazy="selectin", order_by=Realm.name)
    admin_realms: Mapped[list[Realm]] = relationship(secondary=admin_realms, lazy="selectin", order_by=Realm.name)

    def __repr__(self) -> str:
        return f"User(id={self.id!r}, email={self.email!r})"

    def add_realm(self, realm: Realm) -> None:
        if realm not in self.realms:
            self.realms.append(realm)

    def add_realm_admin(self, realm: Realm) -> None:
        """Grant admin on realm; admins can always view the realm too."""
        self.add_realm(realm)
        if realm not in self.admin_realms:
            self.admin_realms.append(realm)

    def remove_realm(self, realm: Realm) -> None:
        """Revoke all access to realm, including admin."""
        self.realms = [r for r in self.realms if r.id != realm.id]
        self.admin_realms = [r for r in self.admin_realms if r.id != realm.id]

    def can_view_realm(self, realm_id: int | None) -> bool:
        if realm_id is None:
            return False
        return any(r.id == realm_id for r in self.realms)

    def can_admin_realm(self, realm_id: int | None) -> bool:
        if realm_id is None:
            return False
        return any(r.id == realm_id for r in self.admin_realms)

    def validate(self) -> list[str]:
        errors = []
        if not self.email or "@" not in self.email:
            errors.append("email is invalid")
        if not (self.name or "").strip():
            errors.append("name cannot be blank")
        return errors


class UserCreateForm(BaseModel):
    """Fields accepted by POST /users/create."""
    email: str = Field(..., min_length=3, max_length=255)
    name: str = Field(..., min_length=1, max_length=255)
    admin: bool = False
