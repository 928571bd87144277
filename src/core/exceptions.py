class StorefrontError(Exception):
    """Base class for errors raised by the storefront services"""
    pass


class ValidationError(StorefrontError):
    """Request data is incomplete or invalid; nothing was persisted"""
    pass


class NotFoundError(StorefrontError):
    pass


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id):
        super().__init__(f"Product {product_id} not found")
        self.product_id = product_id


class VariantNotFoundError(NotFoundError):
    def __init__(self, variant_id):
        super().__init__(f"Product variant {variant_id} not found")
        self.variant_id = variant_id


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id):
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class CategoryNotFoundError(NotFoundError):
    def __init__(self, category):
        super().__init__(f"Category {category} not found")
        self.category = category


class ConflictError(StorefrontError):
    pass


class OrderStateConflictError(ConflictError):
    """Raised when a transition is requested from a terminal or incompatible status"""

    def __init__(self, order_id, current_status, requested_status):
        super().__init__(
            f"Order {order_id} cannot move from '{current_status}' to '{requested_status}'"
        )
        self.order_id = order_id
        self.current_status = current_status
        self.requested_status = requested_status


class SkuConflictError(ConflictError):
    def __init__(self, sku):
        super().__init__(f"SKU {sku} already exists")
        self.sku = sku


class DuplicateVariantError(ConflictError):
    pass


class ConcurrencyConflictError(ConflictError):
    """Raised when a concurrency conflict is detected"""
    pass


class StorageError(StorefrontError):
    """The database rejected or failed a read/write"""
    pass
