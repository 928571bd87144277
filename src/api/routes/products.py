from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from src.api.errors import to_http_exception
from src.core.database import get_db
from src.core.exceptions import StorefrontError
from src.models.enums import InventoryStatus
from src.models.schemas import (
    Product, ProductCreate, ProductPage, ProductUpdate, ProductVariant, SkuCheck,
    VariantCreate, VariantUpdate,
)
from src.services.catalog_service import CatalogService
from src.services.identifiers import generate_sku
from src.services.notification_service import NotificationDispatcher

router = APIRouter()

def get_catalog(db: Session = Depends(get_db)) -> CatalogService:
    return CatalogService(db, notifier=NotificationDispatcher(db))

@router.get("/", response_model=ProductPage)
async def get_products(
    category: Optional[str] = None,
    gender: Optional[str] = None,
    product_type: Optional[str] = None,
    status: Optional[InventoryStatus] = None,
    search: Optional[str] = None,
    include_discontinued: bool = False,
    page: int = Query(1, ge=1),
    page_size: int = Query(24, ge=1, le=200),
    catalog: CatalogService = Depends(get_catalog),
):
    """Storefront/admin product listing"""
    products, total = catalog.get_products(
        category=category,
        gender=gender,
        product_type=product_type,
        status=status,
        search=search,
        include_discontinued=include_discontinued,
        page=page,
        page_size=page_size,
    )
    return ProductPage(
        products=[Product.model_validate(product) for product in products],
        total=total,
        page=page,
        page_size=page_size,
    )

@router.get("/check-sku", response_model=SkuCheck)
async def check_sku(sku: str, exclude_product_id: Optional[str] = None, catalog: CatalogService = Depends(get_catalog)):
    return SkuCheck(sku=sku, exists=catalog.check_sku_exists(sku, exclude_product_id))

@router.get("/generate-sku")
async def new_sku(category: str):
    return {"sku": generate_sku(category)}

@router.post("/", response_model=Product)
async def create_product(product_data: ProductCreate, catalog: CatalogService = Depends(get_catalog)):
    try:
        return catalog.create_product(product_data)
    except StorefrontError as e:
        raise to_http_exception(e)

@router.get("/{product_id}", response_model=Product)
async def get_product(product_id: str, catalog: CatalogService = Depends(get_catalog)):
    try:
        return catalog.get_product_by_id(product_id)
    except StorefrontError as e:
        raise to_http_exception(e)

@router.put("/{product_id}", response_model=Product)
async def update_product(product_id: str, product_data: ProductUpdate, catalog: CatalogService = Depends(get_catalog)):
    try:
        return catalog.update_product(product_id, product_data)
    except StorefrontError as e:
        raise to_http_exception(e)

@router.delete("/{product_id}", response_model=Product)
async def delete_product(product_id: str, catalog: CatalogService = Depends(get_catalog)):
    """Soft delete: the product is marked discontinued"""
    try:
        return catalog.discontinue_product(product_id)
    except StorefrontError as e:
        raise to_http_exception(e)

@router.post("/{product_id}/reactivate", response_model=Product)
async def reactivate_product(product_id: str, catalog: CatalogService = Depends(get_catalog)):
    try:
        return catalog.reactivate_product(product_id)
    except StorefrontError as e:
        raise to_http_exception(e)

@router.get("/{product_id}/variants", response_model=List[ProductVariant])
async def get_variants(product_id: str, catalog: CatalogService = Depends(get_catalog)):
    try:
        return catalog.list_variants(product_id)
    except StorefrontError as e:
        raise to_http_exception(e)

@router.post("/{product_id}/variants", response_model=ProductVariant)
async def create_variant(product_id: str, variant_data: VariantCreate, catalog: CatalogService = Depends(get_catalog)):
    try:
        return catalog.create_variant(product_id, variant_data)
    except StorefrontError as e:
        raise to_http_exception(e)

@router.put("/variants/{variant_id}", response_model=ProductVariant)
async def update_variant(variant_id: str, variant_data: VariantUpdate, catalog: CatalogService = Depends(get_catalog)):
    try:
        return catalog.update_variant(variant_id, variant_data)
    except StorefrontError as e:
        raise to_http_exception(e)
