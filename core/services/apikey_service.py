# =============================================================================
# core/services/apikey_service.py - API Key Business Logic
# =============================================================================
# Creates, looks up and toggles the API keys (authorized apps) of a realm.
#
# Raw keys are never stored: only a SHA-256 digest for lookup and a short
# preview for display. The caller gets the raw key exactly once, from
# create_authorized_app().
# =============================================================================

import logging
import secrets

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.exceptions import APIKeyNotFoundError, ValidationFailedError
from core.models import APIKeyType, AuthorizedApp, Realm
from core.models.authorized_app import API_KEY_PREVIEW_LENGTH
from lib.utils import sha256_hex, utcnow

logger = logging.getLogger(__name__)

# Bytes of randomness in a generated key (before base64)
API_KEY_BYTES = 48


class APIKeyService:
    """Service for API key management operations."""

    @staticmethod
    def generate_api_key() -> str:
        return secrets.token_urlsafe(API_KEY_BYTES)

    @staticmethod
    def create_authorized_app(
        db: Session,
        realm: Realm,
        name: str,
        api_key_type: APIKeyType | str = APIKeyType.DEVICE,
    ) -> tuple[AuthorizedApp, str]:
        """
        Create an API key in a realm.

        Args:
            db: Database session
            realm: Owning realm
            name: Display name of the app using the key
            api_key_type: device (redeem codes) or admin (issue codes)

        Returns:
            Tuple of (authorized app, raw API key)

        Raises:
            ValidationFailedError: If the name is blank or the type unknown
        """
        name = (name or "").strip()
        errors = []
        if not name:
            errors.append("name cannot be blank")
        try:
            key_type = APIKeyType(api_key_type)
        except ValueError:
            key_type = None
            errors.append(f"invalid API key type: {api_key_type}")
        if errors:
            raise ValidationFailedError("API key", errors)

        raw_key = APIKeyService.generate_api_key()
        app = AuthorizedApp(
            realm_id=realm.id,
            name=name,
            api_key_type=key_type.value,
            api_key_preview=raw_key[:API_KEY_PREVIEW_LENGTH],
            api_key_digest=sha256_hex(raw_key),
        )
        db.add(app)
        db.commit()

        logger.info(f"Created {key_type.value} API key {app.id} ({app.name}) in realm {realm.id}")
        return app, raw_key

    @staticmethod
    def find_authorized_app(db: Session, realm: Realm, app_id: int) -> AuthorizedApp:
        """
        Get an API key of the realm by ID.

        Raises:
            APIKeyNotFoundError: If the key doesn't exist in this realm
        """
        app = db.get(AuthorizedApp, app_id)
        if app is None or app.realm_id != realm.id:
            # Don't reveal keys that belong to other realms
            raise APIKeyNotFoundError(app_id)
        return app

    @staticmethod
    def find_authorized_app_by_api_key(db: Session, api_key: str) -> AuthorizedApp | None:
        """
        Resolve a raw API key.

        Returns:
            The matching app (disabled apps included), or None
        """
        if not api_key:
            return None
        stmt = select(AuthorizedApp).where(AuthorizedApp.api_key_digest == sha256_hex(api_key))
        return db.scalars(stmt).first()

    @staticmethod
    def list_authorized_apps(db: Session, realm: Realm) -> list[AuthorizedApp]:
        stmt = (
            select(AuthorizedApp)
            .where(AuthorizedApp.realm_id == realm.id)
            .order_by(AuthorizedApp.deleted_at.is_not(None), AuthorizedApp.name)
        )
        return list(db.scalars(stmt))

    @staticmethod
    def update_authorized_app(db: Session, realm: Realm, app_id: int, name: str) -> AuthorizedApp:
        """
        Rename an API key. The key type can't change after creation.

        Raises:
            APIKeyNotFoundError: If the key doesn't exist in this realm
            ValidationFailedError: If the name is blank
        """
        app = APIKeyService.find_authorized_app(db, realm, app_id)
        name = (name or "").strip()
        if not name:
            raise ValidationFailedError("API key", ["name cannot be blank"])

        app.name = name
        db.commit()
        logger.info(f"Updated API key {app.id} in realm {realm.id}")
        return app

    @staticmethod
    def disable_authorized_app(db: Session, realm: Realm, app_id: int) -> AuthorizedApp:
        app = APIKeyService.find_authorized_app(db, realm, app_id)
        if app.deleted_at is None:
            app.deleted_at = utcnow()
            db.commit()
            logger.info(f"Disabled API key {app.id} in realm {realm.id}")
        return app

    @staticmethod
    def enable_authorized_app(db: Session, realm: Realm, app_id: int) -> AuthorizedApp:
        app = APIKeyService.find_authorized_app(db, realm, app_id)
        if app.deleted_at is not None:
            app.deleted_at = None
            db.commit()
            logger.info(f"Enabled API key {app.id} in realm {realm.id}")
        return app
