import secrets
import string
import time
from enum import Enum

_BASE36 = string.digits + string.ascii_lowercase


class OrderStatus(Enum):
    """Order status enumeration"""
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"

    @classmethod
    def values(cls):
        return [status.value for status in cls]


class ReturnStatus(Enum):
    """Return request lifecycle; every request starts as PENDING"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REFUNDED = "refunded"
    COMPLETED = "completed"

    @classmethod
    def values(cls):
        return [status.value for status in cls]


class RefundMethod(Enum):
    ORIGINAL_PAYMENT = "original_payment"
    STORE_CREDIT = "store_credit"
    EXCHANGE = "exchange"

    @classmethod
    def values(cls):
        return [method.value for method in cls]


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_order_number() -> str:
    """ORD-<base36 millisecond timestamp>-<4 random base36 chars>, upper-cased."""
    timestamp = to_base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"ORD-{timestamp}-{suffix}".upper()
