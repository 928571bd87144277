from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from src.api.errors import to_http_exception
from src.core.database import get_db
from src.core.exceptions import StorefrontError
from src.models.schemas import Category, CategoryCreate
from src.services.catalog_service import CatalogService

router = APIRouter()

@router.get("/", response_model=List[Category])
async def get_categories(db: Session = Depends(get_db)):
    return CatalogService(db).list_categories()

@router.post("/", response_model=Category)
async def create_category(category_data: CategoryCreate, db: Session = Depends(get_db)):
    try:
        return CatalogService(db).create_category(category_data)
    except StorefrontError as e:
        raise to_http_exception(e)

@router.get("/{slug}", response_model=Category)
async def get_category(slug: str, db: Session = Depends(get_db)):
    try:
        return CatalogService(db).get_category(slug)
    except StorefrontError as e:
        raise to_http_exception(e)
