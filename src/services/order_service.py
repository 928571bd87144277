import asyncio
import logging
from datetime import datetime
from typing import List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload
from src.core.config import ORDER_MAX_RETRIES
from src.core.exceptions import (
    ConcurrencyConflictError, OrderNotFoundError, OrderStateConflictError, StorageError,
    StorefrontError, ValidationError,
)
from src.core.invalidation import revalidate_order, revalidate_path
from src.models.database import Order, OrderItem, Product
from src.models.enums import DeliveryMethod, InventoryReason, OrderStatus, TERMINAL_ORDER_STATUSES
from src.models.schemas import OrderCreate
from src.services.identifiers import generate_order_id
from src.services.inventory_service import InventoryLedgerService

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
}

REQUIRED_CUSTOMER_FIELDS = (
    ("name", "name"),
    ("email", "email"),
    ("cedula", "cedula"),
    ("phone", "phone"),
    ("delivery_method", "delivery method"),
    ("payment_method", "payment method"),
)


def validate_checkout(order_data: OrderCreate) -> None:
    if not order_data.items:
        raise ValidationError("Cart is empty")

    info = order_data.customer_info
    missing = [label for field, label in REQUIRED_CUSTOMER_FIELDS if not (getattr(info, field) or "").strip()]
    if missing:
        raise ValidationError(f"Missing required customer information: {', '.join(missing)}")

    if info.delivery_method == DeliveryMethod.DELIVERY.value and not (info.address or "").strip():
        raise ValidationError("An address is required for delivery orders")
    if info.delivery_method == DeliveryMethod.MRW.value and not (info.mrw_office or "").strip():
        raise ValidationError("An MRW office is required for national shipping orders")


class OrderLifecycleService:
    """
    Checkout and order status transitions.

    Orders are created without touching stock. Stock is decremented once,
    when an order reaches `completed`, and returned when an order whose stock
    was already taken is cancelled. Each transition runs as one transaction
    guarded by the order's version column, so a repeated or concurrent
    completion cannot decrement stock twice.
    """

    def __init__(self, db: Session, notifier=None, redis_client=None):
        self.db = db
        self.notifier = notifier
        self.redis_client = redis_client
        self.ledger = InventoryLedgerService(db, notifier=notifier)

    # ---------- checkout ----------

    async def create_order(self, order_data: OrderCreate) -> Order:
        validate_checkout(order_data)

        info = order_data.customer_info
        total = round(sum(item.price * item.quantity for item in order_data.items), 2)
        order_id = generate_order_id()
        logger.info(f"Creating order {order_id} for {info.email} ({len(order_data.items)} items, total {total:.2f})")

        order = Order(
            id=order_id,
            total=total,
            customer_name=info.name,
            customer_email=info.email,
            customer_cedula=info.cedula,
            customer_phone=info.phone,
            customer_address=info.address,
            delivery_method=info.delivery_method,
            payment_method=info.payment_method,
            mrw_office=info.mrw_office,
            status=OrderStatus.PENDING.value,
            inventory_updated=False,
            items=[
                OrderItem(
                    product_id=item.id,
                    name=item.name,
                    price=item.price,
                    quantity=item.quantity,
                    image=item.image,
                )
                for item in order_data.items
            ],
        )

        try:
            # Order and items are inserted in the same transaction
            self.db.add(order)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating order {order_id}: {str(e)}")
            raise StorageError("Failed to process checkout") from e

        logger.info(f"Order {order_id} created")
        revalidate_path("/cart")
        revalidate_path("/checkout")
        revalidate_path("/admin/orders")

        order = self.get_order_by_id(order_id)
        self._notify("send_order_confirmation_email", order)
        self._notify("send_admin_order_notification", order)
        return order

    # ---------- reads ----------

    def get_orders(self, status: Optional[OrderStatus] = None) -> List[Order]:
        query = self.db.query(Order).options(selectinload(Order.items))
        if status:
            query = query.filter(Order.status == status.value)
        return query.order_by(Order.created_at.desc()).all()

    def get_order_by_id(self, order_id: str) -> Order:
        order = self.db.query(Order).options(selectinload(Order.items)).filter(
            Order.id == order_id
        ).first()
        if not order:
            raise OrderNotFoundError(order_id)
        return order

    # ---------- status transitions ----------

    async def transition_status(self, order_id: str, new_status: OrderStatus, acting_user_id: str = "admin") -> Order:
        new_status = OrderStatus(new_status)

        if not self.redis_client:
            return await self._transition_with_retries(order_id, new_status, acting_user_id)

        lock_key = f"order_lock:{order_id}"
        if not self.redis_client.set(lock_key, "locked", nx=True, ex=30):
            raise ConcurrencyConflictError(
                f"Another request is currently updating order {order_id}. Please try again."
            )
        try:
            return await self._transition_with_retries(order_id, new_status, acting_user_id)
        finally:
            self.redis_client.delete(lock_key)

    async def _transition_with_retries(self, order_id: str, new_status: OrderStatus, acting_user_id: str) -> Order:
        for attempt in range(ORDER_MAX_RETRIES):
            try:
                logger.info(f"Moving order {order_id} to {new_status.value} (attempt {attempt + 1})")
                order = self._transition_attempt(order_id, new_status, acting_user_id)
                break
            except ConcurrencyConflictError as e:
                if attempt == ORDER_MAX_RETRIES - 1:
                    raise ConcurrencyConflictError(
                        f"Unable to update order {order_id} after {ORDER_MAX_RETRIES} attempts: {str(e)}"
                    )
                logger.warning(f"Concurrency conflict on attempt {attempt + 1}, retrying...")
                await asyncio.sleep(0.01 * (attempt + 1))
        else:
            raise StorageError(f"Failed to update order {order_id}")

        revalidate_order(order_id)
        self.ledger.dispatch_pending_alerts()
        self._notify("send_order_status_update_email", order)
        return order

    def _transition_attempt(self, order_id: str, new_status: OrderStatus, acting_user_id: str) -> Order:
        try:
            order = self.db.query(Order).options(selectinload(Order.items)).filter(
                Order.id == order_id
            ).first()
            if not order:
                raise OrderNotFoundError(order_id)

            current_status = OrderStatus(order.status)
            if current_status in TERMINAL_ORDER_STATUSES or new_status not in ALLOWED_TRANSITIONS[current_status]:
                raise OrderStateConflictError(order_id, current_status.value, new_status.value)

            inventory_updated = order.inventory_updated
            if new_status == OrderStatus.COMPLETED and not inventory_updated:
                self._decrement_stock(order, acting_user_id)
                inventory_updated = True
            elif (
                new_status == OrderStatus.CANCELLED
                and current_status in (OrderStatus.PROCESSING, OrderStatus.COMPLETED)
                and inventory_updated
            ):
                self._restock(order, acting_user_id)

            # Status is written last, guarded by the version read above
            update_count = self.db.query(Order).filter(
                Order.id == order_id,
                Order.version == order.version,
            ).update({
                Order.status: new_status.value,
                Order.inventory_updated: inventory_updated,
                Order.updated_at: datetime.utcnow(),
                Order.version: order.version + 1,
            }, synchronize_session="evaluate")

            if update_count == 0:
                raise ConcurrencyConflictError(f"Order {order_id} was modified by another transaction")

            self.db.commit()
        except StorefrontError:
            self.db.rollback()
            self.ledger.discard_pending_alerts()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            self.ledger.discard_pending_alerts()
            logger.error(f"Error updating order {order_id}: {str(e)}")
            raise StorageError(f"Failed to update order {order_id}") from e

        logger.info(f"Order {order_id}: {current_status.value} -> {new_status.value}")
        return order

    def _decrement_stock(self, order: Order, acting_user_id: str) -> None:
        for item in order.items:
            product = self.db.query(Product).filter(Product.id == item.product_id).first()
            if not product or not product.inventory_managed:
                logger.info(f"Skipping stock update for {item.product_id}: product not found or inventory not managed")
                continue

            new_quantity = max(0, product.inventory_quantity - item.quantity)
            self.ledger.apply_inventory_change(
                product.id,
                new_quantity,
                InventoryReason.ORDER,
                order_id=order.id,
                user_id=acting_user_id,
            )

    def _restock(self, order: Order, acting_user_id: str) -> None:
        for item in order.items:
            product = self.db.query(Product).filter(Product.id == item.product_id).first()
            if not product or not product.inventory_managed:
                logger.info(f"Skipping restock for {item.product_id}: product not found or inventory not managed")
                continue

            self.ledger.apply_inventory_change(
                product.id,
                product.inventory_quantity + item.quantity,
                InventoryReason.RETURN,
                order_id=order.id,
                user_id=acting_user_id,
                details=f"Order {order.id} cancelled",
            )

    def _notify(self, method: str, order: Order) -> None:
        if not self.notifier:
            return
        try:
            getattr(self.notifier, method)(order)
        except Exception as e:
            logger.error(f"Notification {method} failed for order {order.id}: {str(e)}")
