# =============================================================================
# core/services/user_service.py - User Business Logic
# =============================================================================
# Handles user lookups and realm membership changes.
# =============================================================================

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.exceptions import UserNotFoundError, ValidationFailedError
from core.models import Realm, User
from core.models.base import user_realms
from lib.utils import utcnow

logger = logging.getLogger(__name__)


class UserService:
    """Service for user management operations."""

    @staticmethod
    def find_user_by_email(db: Session, email: str) -> User | None:
        """
        Get a user by email (case-insensitive).

        Returns:
            The user, or None if no user has that email
        """
        email = (email or "").strip().lower()
        return db.scalars(select(User).where(User.email == email)).first()

    @staticmethod
    def find_user(db: Session, user_id: int) -> User:
        """
        Get a user by ID.

        Raises:
            UserNotFoundError: If the user doesn't exist
        """
        user = db.get(User, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    @staticmethod
    def save_user(db: Session, user: User) -> User:
        """
        Validate and persist a user.

        Raises:
            ValidationFailedError: If the user is invalid or the email is taken
        """
        user.email = (user.email or "").strip().lower()
        errors = user.validate()
        if errors:
            raise ValidationFailedError("user", errors)

        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ValidationFailedError("user", [f"email {user.email!r} is already taken"])

        logger.info(f"Saved user: {user.id} ({user.email})")
        return user

    @staticmethod
    def list_users_for_realm(db: Session, realm: Realm) -> list[User]:
        stmt = (
            select(User)
            .join(user_realms, user_realms.c.user_id == User.id)
            .where(user_realms.c.realm_id == realm.id)
            .order_by(User.email)
        )
        return list(db.scalars(stmt))

    @staticmethod
    def add_user_to_realm(
        db: Session,
        realm: Realm,
        email: str,
        name: str,
        admin: bool = False,
    ) -> tuple[User, bool]:
        """
        Grant a user access to a realm, creating the user if needed.

        Args:
            db: Database session
            realm: Realm to grant access to
            email: User email
            name: Display name (only used when the user is created)
            admin: Also grant realm admin

        Returns:
            Tuple of (user, created)

        Raises:
            ValidationFailedError: If a new user fails validation
        """
        user = UserService.find_user_by_email(db, email)
        created = user is None
        if user is None:
            user = User(email=email, name=name)

        if admin:
            user.add_realm_admin(realm)
        else:
            user.add_realm(realm)

        UserService.save_user(db, user)
        logger.info(f"Granted {user.email} access to realm {realm.id} (admin={admin})")
        return user, created

    @staticmethod
    def remove_user_from_realm(db: Session, realm: Realm, email: str) -> User:
        """
        Revoke a user's access to a realm. The user record itself is kept.

        Raises:
            UserNotFoundError: If no such user has access to the realm
        """
        user = UserService.find_user_by_email(db, email)
        if user is None or not user.can_view_realm(realm.id):
            raise UserNotFoundError(email)

        user.remove_realm(realm)
        db.commit()
        logger.info(f"Removed {user.email} from realm {realm.id}")
        return user

    @staticmethod
    def mark_revoke_checked(db: Session, user: User) -> None:
        """Record that the user's session was just checked for revocation."""
        user.last_revoke_check = utcnow()
        db.commit()
