import asyncio
import logging
from datetime import datetime
from typing import List, Optional, Tuple
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, contains_eager
from src.core.config import ORDER_MAX_RETRIES
from src.core.exceptions import (
    ConcurrencyConflictError, ProductNotFoundError, StorageError, StorefrontError,
    ValidationError, VariantNotFoundError,
)
from src.core.invalidation import revalidate_product
from src.models.database import InventoryLog, Product, ProductVariant
from src.models.enums import ADJUSTMENT_REASONS, InventoryReason, InventoryStatus
from src.models.schemas import InventoryAdjustment, InventoryLogFilter
from src.services.inventory_status import classify, resolve_status

logger = logging.getLogger(__name__)

# Statuses that trigger a low-stock alert when a product drops out of in_stock
ALERT_STATUSES = (InventoryStatus.LOW_STOCK.value, InventoryStatus.OUT_OF_STOCK.value)


class InventoryLedgerService:
    """
    Single writer for product/variant stock.

    Every quantity change goes through `apply_inventory_change`, which updates
    quantity, status and version with an optimistic version check and appends
    exactly one `InventoryLog` row. It does not commit: the caller owns the
    transaction, so the product row and its log row are committed or rolled
    back together.
    """

    def __init__(self, db: Session, notifier=None):
        self.db = db
        self.notifier = notifier
        self._pending_alerts: List[str] = []

    # ---------- writes inside the caller's transaction ----------

    def apply_inventory_change(
        self,
        product_id: str,
        new_quantity: int,
        reason: InventoryReason,
        order_id: Optional[str] = None,
        user_id: Optional[str] = None,
        details: Optional[str] = None,
        admin_name: Optional[str] = None,
    ) -> Tuple[Product, InventoryLog]:
        if new_quantity < 0:
            raise ValidationError(f"Inventory quantity cannot be negative (got {new_quantity})")

        product = self.db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise ProductNotFoundError(product_id)

        previous_quantity = product.inventory_quantity
        previous_status = product.inventory_status
        expected_version = product.version
        new_status = resolve_status(previous_status, new_quantity, product.low_stock_threshold)

        self._conditional_update(Product, product_id, expected_version, {
            Product.inventory_quantity: new_quantity,
            Product.inventory_status: new_status.value,
        })

        log = self._append_log(
            product_id=product_id,
            previous_quantity=previous_quantity,
            new_quantity=new_quantity,
            reason=reason,
            order_id=order_id,
            user_id=user_id,
            admin_name=admin_name,
            details=details,
        )

        if previous_status == InventoryStatus.IN_STOCK.value and new_status.value in ALERT_STATUSES:
            self._pending_alerts.append(product_id)

        logger.info(
            f"Inventory for {product.name} ({product_id}): "
            f"{previous_quantity} -> {new_quantity}, status {new_status.value}, reason {InventoryReason(reason).value}"
        )
        return product, log

    def apply_variant_inventory_change(
        self,
        variant_id: str,
        new_quantity: int,
        reason: InventoryReason,
        user_id: Optional[str] = None,
        details: Optional[str] = None,
        admin_name: Optional[str] = None,
    ) -> Tuple[ProductVariant, InventoryLog]:
        if new_quantity < 0:
            raise ValidationError(f"Inventory quantity cannot be negative (got {new_quantity})")

        variant = self.db.query(ProductVariant).filter(ProductVariant.id == variant_id).first()
        if not variant:
            raise VariantNotFoundError(variant_id)

        previous_quantity = variant.inventory_quantity
        new_status = resolve_status(variant.inventory_status, new_quantity, variant.low_stock_threshold)

        self._conditional_update(ProductVariant, variant_id, variant.version, {
            ProductVariant.inventory_quantity: new_quantity,
            ProductVariant.inventory_status: new_status.value,
        })

        log = self._append_log(
            product_id=variant.product_id,
            variant_id=variant_id,
            previous_quantity=previous_quantity,
            new_quantity=new_quantity,
            reason=reason,
            user_id=user_id,
            admin_name=admin_name,
            details=details,
        )
        logger.info(
            f"Inventory for variant {variant.sku} ({variant_id}): {previous_quantity} -> {new_quantity}"
        )
        return variant, log

    def set_discontinued(
        self,
        product_id: str,
        discontinued: bool,
        user_id: Optional[str] = None,
        admin_name: Optional[str] = None,
    ) -> Tuple[Product, InventoryLog]:
        """Explicit status override: the only way in or out of `discontinued`"""
        product = self.db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise ProductNotFoundError(product_id)

        if discontinued:
            new_status = InventoryStatus.DISCONTINUED
            reason = InventoryReason.PRODUCT_DELETED
            details = "Product discontinued"
        else:
            new_status = classify(product.inventory_quantity, product.low_stock_threshold)
            reason = InventoryReason.PRODUCT_UPDATED
            details = "Product reactivated"

        self._conditional_update(Product, product_id, product.version, {
            Product.inventory_status: new_status.value,
        })
        log = self._append_log(
            product_id=product_id,
            previous_quantity=product.inventory_quantity,
            new_quantity=product.inventory_quantity,
            reason=reason,
            user_id=user_id,
            admin_name=admin_name,
            details=details,
        )
        logger.info(f"Product {product_id} status set to {new_status.value}")
        return product, log

    def refresh_status(self, product_id: str) -> Product:
        """Re-derive status after a threshold edit. Quantity is unchanged, so no log row is written."""
        product = self.db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise ProductNotFoundError(product_id)

        previous_status = product.inventory_status
        new_status = resolve_status(previous_status, product.inventory_quantity, product.low_stock_threshold)
        if new_status.value == previous_status:
            return product

        self._conditional_update(Product, product_id, product.version, {
            Product.inventory_status: new_status.value,
        })
        if previous_status == InventoryStatus.IN_STOCK.value and new_status.value in ALERT_STATUSES:
            self._pending_alerts.append(product_id)

        logger.info(f"Product {product_id} status re-derived: {previous_status} -> {new_status.value}")
        return product

    def refresh_variant_status(self, variant_id: str) -> ProductVariant:
        variant = self.db.query(ProductVariant).filter(ProductVariant.id == variant_id).first()
        if not variant:
            raise VariantNotFoundError(variant_id)

        new_status = resolve_status(variant.inventory_status, variant.inventory_quantity, variant.low_stock_threshold)
        if new_status.value != variant.inventory_status:
            self._conditional_update(ProductVariant, variant_id, variant.version, {
                ProductVariant.inventory_status: new_status.value,
            })
            logger.info(f"Variant {variant.sku} status re-derived: {new_status.value}")
        return variant

    def _conditional_update(self, model, row_id: str, expected_version: int, values: dict) -> None:
        values = dict(values)
        values[model.version] = expected_version + 1
        values[model.updated_at] = datetime.utcnow()

        update_count = self.db.query(model).filter(
            model.id == row_id,
            model.version == expected_version,
        ).update(values, synchronize_session="evaluate")

        if update_count == 0:
            # Version changed - another transaction updated this row
            raise ConcurrencyConflictError(
                f"{model.__tablename__} row {row_id} was modified by another transaction"
            )

    def _append_log(self, **fields) -> InventoryLog:
        fields["reason"] = InventoryReason(fields["reason"]).value
        log = InventoryLog(timestamp=datetime.utcnow(), **fields)
        self.db.add(log)
        try:
            self.db.flush()
        except SQLAlchemyError as e:
            # The quantity update is in the same transaction and is rolled back by the caller
            logger.error(
                f"Inventory log insert failed for product {fields['product_id']}, "
                f"discarding the quantity change: {str(e)}"
            )
            raise StorageError(f"Failed to record inventory log: {str(e)}") from e
        return log

    # ---------- post-commit side effects ----------

    def dispatch_pending_alerts(self) -> None:
        alerts, self._pending_alerts = self._pending_alerts, []
        if not self.notifier:
            return
        for product_id in alerts:
            try:
                product = self.db.query(Product).filter(Product.id == product_id).first()
                if product:
                    self.notifier.send_low_stock_alert(product)
            except Exception as e:
                logger.error(f"Low stock alert failed for product {product_id}: {str(e)}")

    def discard_pending_alerts(self) -> None:
        self._pending_alerts = []

    # ---------- public operations that own a transaction ----------

    async def adjust_inventory(self, product_id: str, adjustment: InventoryAdjustment) -> InventoryLog:
        """Record a manual stock change from the admin inventory screen"""
        if adjustment.reason not in ADJUSTMENT_REASONS:
            raise ValidationError(
                f"Reason '{adjustment.reason.value}' is not allowed for a manual adjustment"
            )

        for attempt in range(ORDER_MAX_RETRIES):
            try:
                logger.info(f"Adjusting inventory for {product_id} (attempt {attempt + 1})")
                _, log = self._in_transaction(lambda: self.apply_inventory_change(
                    product_id,
                    adjustment.quantity,
                    adjustment.reason,
                    user_id=adjustment.user_id,
                    details=adjustment.details,
                    admin_name=adjustment.admin_name,
                ))
                revalidate_product(product_id)
                self.dispatch_pending_alerts()
                return log
            except ConcurrencyConflictError as e:
                if attempt == ORDER_MAX_RETRIES - 1:
                    raise ConcurrencyConflictError(
                        f"Unable to adjust inventory after {ORDER_MAX_RETRIES} attempts: {str(e)}"
                    )
                logger.warning(f"Concurrency conflict on attempt {attempt + 1}, retrying...")
                await asyncio.sleep(0.01 * (attempt + 1))

        raise StorageError("Failed to adjust inventory")

    async def adjust_variant_inventory(self, variant_id: str, adjustment: InventoryAdjustment) -> InventoryLog:
        if adjustment.reason not in ADJUSTMENT_REASONS:
            raise ValidationError(
                f"Reason '{adjustment.reason.value}' is not allowed for a manual adjustment"
            )

        for attempt in range(ORDER_MAX_RETRIES):
            try:
                _, log = self._in_transaction(lambda: self.apply_variant_inventory_change(
                    variant_id,
                    adjustment.quantity,
                    adjustment.reason,
                    user_id=adjustment.user_id,
                    details=adjustment.details,
                    admin_name=adjustment.admin_name,
                ))
                revalidate_product(log.product_id)
                return log
            except ConcurrencyConflictError as e:
                if attempt == ORDER_MAX_RETRIES - 1:
                    raise ConcurrencyConflictError(
                        f"Unable to adjust variant inventory after {ORDER_MAX_RETRIES} attempts: {str(e)}"
                    )
                logger.warning(f"Concurrency conflict on attempt {attempt + 1}, retrying...")
                await asyncio.sleep(0.01 * (attempt + 1))

        raise StorageError("Failed to adjust variant inventory")

    def _in_transaction(self, operation):
        try:
            result = operation()
            self.db.commit()
            return result
        except StorefrontError:
            self.db.rollback()
            self.discard_pending_alerts()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            self.discard_pending_alerts()
            logger.error(f"Error writing inventory: {str(e)}")
            raise StorageError(f"Failed to update inventory: {str(e)}") from e

    # ---------- read side ----------

    def get_inventory_overview(self, status: Optional[InventoryStatus] = None) -> List[Product]:
        query = self.db.query(Product)
        if status:
            query = query.filter(Product.inventory_status == status.value)
        return query.order_by(Product.updated_at.desc()).all()

    def get_inventory_logs(self, log_filter: InventoryLogFilter) -> Tuple[List[InventoryLog], int]:
        query = self.db.query(InventoryLog).join(Product, InventoryLog.product_id == Product.id)

        if log_filter.product_id:
            query = query.filter(InventoryLog.product_id == log_filter.product_id)
        if log_filter.reason:
            query = query.filter(InventoryLog.reason == log_filter.reason.value)
        if log_filter.admin_id:
            query = query.filter(or_(
                InventoryLog.user_id == log_filter.admin_id,
                InventoryLog.admin_name == log_filter.admin_id,
            ))
        if log_filter.date_from:
            query = query.filter(InventoryLog.timestamp >= log_filter.date_from)
        if log_filter.date_to:
            query = query.filter(InventoryLog.timestamp <= log_filter.date_to)
        if log_filter.search_term:
            pattern = f"%{log_filter.search_term}%"
            query = query.filter(or_(
                Product.name.ilike(pattern),
                Product.sku.ilike(pattern),
                InventoryLog.details.ilike(pattern),
                InventoryLog.order_id.ilike(pattern),
                InventoryLog.admin_name.ilike(pattern),
            ))

        total = query.count()
        logs = (
            query.options(contains_eager(InventoryLog.product))
            .order_by(InventoryLog.timestamp.desc(), InventoryLog.id.desc())
            .offset((log_filter.page - 1) * log_filter.page_size)
            .limit(log_filter.page_size)
            .all()
        )
        return logs, total
