import logging
from typing import Callable, List

logger = logging.getLogger(__name__)

_listeners: List[Callable[[str], None]] = []


def subscribe(listener: Callable[[str], None]) -> None:
    """Register a callable that receives every revalidated path"""
    _listeners.append(listener)


def unsubscribe(listener: Callable[[str], None]) -> None:
    if listener in _listeners:
        _listeners.remove(listener)


def revalidate_path(path: str) -> None:
    """Tell the presentation layer that data behind `path` changed"""
    logger.debug(f"Revalidating {path}")
    for listener in list(_listeners):
        try:
            listener(path)
        except Exception as e:
            logger.error(f"Invalidation listener failed for {path}: {str(e)}")


def revalidate_product(product_id: str) -> None:
    revalidate_path("/admin/products")
    revalidate_path(f"/admin/products/{product_id}")
    revalidate_path("/admin/inventory")


def revalidate_order(order_id: str) -> None:
    revalidate_path("/admin/orders")
    revalidate_path(f"/admin/orders/{order_id}")
