from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from src.api.errors import to_http_exception
from src.core.database import get_db
from src.core.exceptions import StorefrontError
from src.models.schemas import AllSettings
from src.services.settings_service import SettingsService

router = APIRouter()

@router.get("/", response_model=AllSettings)
async def get_settings(db: Session = Depends(get_db)):
    return SettingsService(db).get_settings()

@router.put("/{section}")
async def save_settings(section: str, values: dict, db: Session = Depends(get_db)):
    try:
        return SettingsService(db).save_settings(section, values)
    except StorefrontError as e:
        raise to_http_exception(e)
