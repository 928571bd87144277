from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional
from src.api.errors import to_http_exception
from src.core.database import get_db
from src.core.exceptions import StorefrontError
from src.models.enums import OrderStatus
from src.models.schemas import Order, OrderCreate, OrderStatusUpdate
from src.services.notification_service import NotificationDispatcher
from src.services.order_service import OrderLifecycleService

router = APIRouter()

def get_order_service(db: Session = Depends(get_db)) -> OrderLifecycleService:
    return OrderLifecycleService(db, notifier=NotificationDispatcher(db))

@router.post("/", response_model=Order)
async def create_order(order_data: OrderCreate, service: OrderLifecycleService = Depends(get_order_service)):
    """Checkout: create a pending order from the cart snapshot"""
    try:
        return await service.create_order(order_data)
    except StorefrontError as e:
        raise to_http_exception(e)

@router.get("/", response_model=List[Order])
async def get_orders(
    status: Optional[OrderStatus] = None,
    service: OrderLifecycleService = Depends(get_order_service),
):
    """Get all orders, newest first"""
    return service.get_orders(status)

@router.get("/{order_id}", response_model=Order)
async def get_order(order_id: str, service: OrderLifecycleService = Depends(get_order_service)):
    """Get a specific order"""
    try:
        return service.get_order_by_id(order_id)
    except StorefrontError as e:
        raise to_http_exception(e)

@router.patch("/{order_id}/status", response_model=Order)
async def update_order_status(
    order_id: str,
    update: OrderStatusUpdate,
    service: OrderLifecycleService = Depends(get_order_service),
):
    """Move an order through pending -> processing -> completed / cancelled"""
    try:
        return await service.transition_status(order_id, update.status, update.user_id)
    except StorefrontError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")
