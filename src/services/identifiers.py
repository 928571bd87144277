import re
import secrets
import time
from src.core.config import SKU_PREFIX_LENGTH

BASE36_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def random_base36(length: int = 6) -> str:
    return "".join(secrets.choice(BASE36_ALPHABET) for _ in range(length))


def generate_order_id() -> str:
    """ORD-<base36 millisecond timestamp>-<6 base36 chars>, upper-cased"""
    timestamp = to_base36(int(time.time() * 1000))
    return f"ORD-{timestamp}-{random_base36()}".upper()


def generate_sku(category_name: str) -> str:
    """<first letters of the category>-<6 base36 chars>.

    Uniqueness is enforced by the unique index on products.sku; a collision
    surfaces as a SKU conflict instead of being retried here.
    """
    letters = re.sub(r"[^A-Za-z]", "", category_name or "").upper()
    prefix = (letters[:SKU_PREFIX_LENGTH] or "PRD").ljust(SKU_PREFIX_LENGTH, "X")
    return f"{prefix}-{random_base36().upper()}"
