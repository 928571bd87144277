from src.models.enums import InventoryStatus


def classify(quantity: int, low_stock_threshold: int) -> InventoryStatus:
    """Derive the stock status from quantity and the low-stock threshold.

    Never returns DISCONTINUED; that status is only set by an explicit admin call.
    """
    if quantity <= 0:
        return InventoryStatus.OUT_OF_STOCK
    elif quantity <= low_stock_threshold:
        return InventoryStatus.LOW_STOCK
    else:
        return InventoryStatus.IN_STOCK


def resolve_status(current_status: str, quantity: int, low_stock_threshold: int) -> InventoryStatus:
    """Status to store after a quantity change; discontinued is sticky"""
    if current_status == InventoryStatus.DISCONTINUED.value:
        return InventoryStatus.DISCONTINUED
    return classify(quantity, low_stock_threshold)
