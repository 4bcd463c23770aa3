# Models
from .coupon import Coupon, DiscountType
from .order import Order, OrderItem, OrderStatus, PaymentStatus
from .idempotency_keys import IdempotencyKey, IdempotencyStatus

__all__ = [
    "Coupon",
    "DiscountType",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentStatus",
    "IdempotencyKey",
    "IdempotencyStatus",
]
