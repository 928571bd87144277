import logging
from datetime import datetime
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from src.core.exceptions import StorageError, ValidationError
from src.core.invalidation import revalidate_path
from src.models.database import Setting
from src.models.schemas import AllSettings, NotificationSettings, ShippingSettings, StoreSettings

logger = logging.getLogger(__name__)

SECTIONS = {
    "store": StoreSettings,
    "shipping": ShippingSettings,
    "notifications": NotificationSettings,
}


class SettingsService:
    """Runtime store settings, one JSON row per section"""

    def __init__(self, db: Session):
        self.db = db

    def get_settings(self) -> AllSettings:
        rows = self.db.query(Setting).filter(Setting.id.in_(list(SECTIONS))).all()
        values = {row.id: row.value or {} for row in rows}
        return AllSettings(**{
            section: model(**values.get(section, {}))
            for section, model in SECTIONS.items()
        })

    def save_settings(self, section: str, values: dict):
        model = SECTIONS.get(section)
        if model is None:
            raise ValidationError(f"Unknown settings section '{section}'")

        try:
            settings = model(**values)
        except SchemaValidationError as e:
            raise ValidationError(f"Invalid {section} settings: {str(e)}") from e

        try:
            row = self.db.query(Setting).filter(Setting.id == section).first()
            if row:
                row.value = settings.model_dump()
                row.updated_at = datetime.utcnow()
            else:
                self.db.add(Setting(id=section, value=settings.model_dump()))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to save {section} settings: {str(e)}")
            raise StorageError(f"Failed to save {section} settings") from e

        logger.info(f"Saved {section} settings")
        revalidate_path("/admin/settings")
        return settings
