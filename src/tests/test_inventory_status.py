import pytest
from src.models.enums import InventoryStatus
from src.services.inventory_status import classify, resolve_status


@pytest.mark.parametrize("quantity,threshold,expected", [
    (-3, 5, InventoryStatus.OUT_OF_STOCK),
    (0, 5, InventoryStatus.OUT_OF_STOCK),
    (0, 0, InventoryStatus.OUT_OF_STOCK),
    (1, 5, InventoryStatus.LOW_STOCK),
    (5, 5, InventoryStatus.LOW_STOCK),
    (6, 5, InventoryStatus.IN_STOCK),
    (1, 0, InventoryStatus.IN_STOCK),
    (8, 5, InventoryStatus.IN_STOCK),
])
def test_classify(quantity, threshold, expected):
    assert classify(quantity, threshold) == expected


def test_classify_never_returns_discontinued():
    statuses = {classify(q, t) for q in range(-2, 12) for t in range(0, 8)}
    assert InventoryStatus.DISCONTINUED not in statuses


def test_resolve_status_keeps_discontinued():
    assert resolve_status("discontinued", 0, 5) == InventoryStatus.DISCONTINUED
    assert resolve_status("discontinued", 50, 5) == InventoryStatus.DISCONTINUED


def test_resolve_status_recomputes_otherwise():
    assert resolve_status("in_stock", 0, 5) == InventoryStatus.OUT_OF_STOCK
    assert resolve_status("out_of_stock", 3, 5) == InventoryStatus.LOW_STOCK
