from datetime import datetime
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from src.api.errors import to_http_exception
from src.core.database import get_db
from src.core.exceptions import StorefrontError
from src.models.enums import InventoryReason, InventoryStatus
from src.models.schemas import (
    InventoryAdjustment, InventoryLog, InventoryLogFilter, InventoryLogPage, Product,
)
from src.services.inventory_service import InventoryLedgerService
from src.services.notification_service import NotificationDispatcher

router = APIRouter()

def get_ledger(db: Session = Depends(get_db)) -> InventoryLedgerService:
    return InventoryLedgerService(db, notifier=NotificationDispatcher(db))

@router.get("/", response_model=List[Product])
async def get_inventory(
    status: Optional[InventoryStatus] = None,
    ledger: InventoryLedgerService = Depends(get_ledger),
):
    """Products with their inventory sub-record"""
    return ledger.get_inventory_overview(status)

@router.get("/logs", response_model=InventoryLogPage)
async def get_inventory_logs(
    product_id: Optional[str] = None,
    reason: Optional[InventoryReason] = None,
    admin_id: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200),
    ledger: InventoryLedgerService = Depends(get_ledger),
):
    """Filtered, paginated view of the inventory audit trail"""
    log_filter = InventoryLogFilter(
        product_id=product_id,
        reason=reason,
        admin_id=admin_id,
        date_from=date_from,
        date_to=date_to,
        search_term=search,
        page=page,
        page_size=page_size,
    )
    logs, total = ledger.get_inventory_logs(log_filter)
    return InventoryLogPage(
        logs=[InventoryLog.model_validate(log) for log in logs],
        total=total,
        page=page,
        page_size=page_size,
    )

@router.post("/{product_id}/adjust", response_model=InventoryLog)
async def adjust_inventory(
    product_id: str,
    adjustment: InventoryAdjustment,
    ledger: InventoryLedgerService = Depends(get_ledger),
):
    """Set a product's stock by hand (recount, manual fix, customer return)"""
    try:
        return await ledger.adjust_inventory(product_id, adjustment)
    except StorefrontError as e:
        raise to_http_exception(e)

@router.post("/variants/{variant_id}/adjust", response_model=InventoryLog)
async def adjust_variant_inventory(
    variant_id: str,
    adjustment: InventoryAdjustment,
    ledger: InventoryLedgerService = Depends(get_ledger),
):
    try:
        return await ledger.adjust_variant_inventory(variant_id, adjustment)
    except StorefrontError as e:
        raise to_http_exception(e)
