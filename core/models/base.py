# =============================================================================
# core/models/base.py - Declarative Base and Association Tables
# =============================================================================
# Every ORM model inherits from Base so init_db() can create the schema in
# one call. The realm membership tables live here because both User and
# Realm refer to them.
# =============================================================================

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Table
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from lib.utils import utcnow


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    """created_at / updated_at columns shared by most tables."""

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


# Users that may view a realm
user_realms = Table(
    "user_realms",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("realm_id", Integer, ForeignKey("realms.id", ondelete="CASCADE"), primary_key=True),
)

# Users that may administer a realm
admin_realms = Table(
    "admin_realms",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("realm_id", Integer, ForeignKey("realms.id", ondelete="CASCADE"), primary_key=True),
)
