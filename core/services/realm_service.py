# =============================================================================
# core/services/realm_service.py - Realm Business Logic
# =============================================================================
# Handles realm lookups and persistence.
# Separates HTTP concerns from database/business logic.
# =============================================================================

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.exceptions import RealmNotFoundError, ValidationFailedError
from core.models import Realm, RealmSettingsForm, User

logger = logging.getLogger(__name__)


class RealmService:
    """
    Service for realm management operations.

    Provides a clean interface between API routes and database.
    """

    @staticmethod
    def save_realm(db: Session, realm: Realm) -> Realm:
        """
        Validate and persist a realm.

        Args:
            db: Database session
            realm: New or modified realm

        Returns:
            The saved realm (with id populated)

        Raises:
            ValidationFailedError: If the realm is invalid or the name is taken
        """
        errors = realm.validate()
        if errors:
            raise ValidationFailedError("realm", errors)

        db.add(realm)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ValidationFailedError("realm", [f"name {realm.name!r} is already taken"])

        logger.info(f"Saved realm: {realm.id} ({realm.name})")
        return realm

    @staticmethod
    def find_realm(db: Session, realm_id: int) -> Realm:
        """
        Get a realm by ID.

        Raises:
            RealmNotFoundError: If the realm doesn't exist
        """
        realm = db.get(Realm, realm_id)
        if realm is None:
            raise RealmNotFoundError(realm_id)
        return realm

    @staticmethod
    def find_realm_by_name(db: Session, name: str) -> Realm | None:
        return db.scalars(select(Realm).where(Realm.name == name)).first()

    @staticmethod
    def list_realms(db: Session) -> list[Realm]:
        return list(db.scalars(select(Realm).order_by(Realm.name)))

    @staticmethod
    def list_realms_for_user(db: Session, user: User) -> list[Realm]:
        """Realms the user has been granted access to, by name."""
        return sorted(user.realms, key=lambda realm: realm.name)

    @staticmethod
    def update_settings(db: Session, realm: Realm, form: RealmSettingsForm) -> Realm:
        """
        Apply the realm settings form.

        Raises:
            ValidationFailedError: If the resulting realm is invalid
        """
        realm.name = form.name.strip()
        realm.region_code = form.region_code.strip().upper()
        realm.allowed_test_types = form.allowed_test_types
        realm.abuse_prevention_enabled = form.abuse_prevention_enabled
        realm.code_length = form.code_length
        realm.code_duration = form.code_duration_minutes * 60
        realm.long_code_length = form.long_code_length
        realm.long_code_duration = form.long_code_duration_minutes * 60
        realm.sms_text_template = form.sms_text_template

        try:
            return RealmService.save_realm(db, realm)
        except ValidationFailedError:
            # Don't leave the half-applied form on the identity map
            db.rollback()
            raise
