import enum


class InventoryStatus(str, enum.Enum):
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"
    DISCONTINUED = "discontinued"


class InventoryReason(str, enum.Enum):
    ORDER = "order"
    MANUAL = "manual"
    RETURN = "return"
    ADJUSTMENT = "adjustment"
    PRODUCT_CREATED = "product_created"
    PRODUCT_UPDATED = "product_updated"
    PRODUCT_DELETED = "product_deleted"


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DeliveryMethod(str, enum.Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"
    MRW = "mrw"


TERMINAL_ORDER_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})

# Manual adjustments an admin may record from the inventory screen
ADJUSTMENT_REASONS = frozenset({
    InventoryReason.MANUAL,
    InventoryReason.RETURN,
    InventoryReason.ADJUSTMENT,
})
