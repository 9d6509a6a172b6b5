# =============================================================================
# core/services/mobile_app_service.py - Mobile App Business Logic
# =============================================================================

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.exceptions import ValidationFailedError
from core.models import MobileApp, Realm

logger = logging.getLogger(__name__)


class MobileAppService:
    """Service for mobile app registration."""

    @staticmethod
    def save_mobile_app(db: Session, app: MobileApp) -> MobileApp:
        """
        Validate and persist a mobile app.

        Raises:
            ValidationFailedError: If required fields are missing
        """
        errors = app.validate()
        if errors:
            raise ValidationFailedError("mobile app", errors)

        db.add(app)
        db.commit()
        logger.info(f"Saved mobile app: {app.id} ({app.name}) in realm {app.realm_id}")
        return app

    @staticmethod
    def list_mobile_apps(db: Session, realm: Realm) -> list[MobileApp]:
        stmt = select(MobileApp).where(MobileApp.realm_id == realm.id).order_by(MobileApp.name)
        return list(db.scalars(stmt))
