"""金额计算

所有金额使用 Decimal，四舍五入到分。
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Union

from app.models.coupon import DiscountType
from app.schemas.checkout import AppliedCoupon, CartLine, OrderTotals, ShippingSelection

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value: Union[Decimal, int, float, str, None]) -> Decimal:
    """转换为两位小数的 Decimal"""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def cart_subtotal(lines: Iterable[CartLine]) -> Decimal:
    return money(sum((line.product.price * line.quantity for line in lines), Decimal("0")))


def compute_discount(
    subtotal: Decimal,
    discount_type: str,
    discount_value: Decimal,
    max_discount: Optional[Decimal] = None,
    min_order_value: Optional[Decimal] = None,
) -> Decimal:
    """计算折扣金额

    百分比折扣按小计计算，固定折扣直接取值；
    先按 max_discount 封顶，再按小计封顶。未达到最低订单金额时返回 0。
    """
    subtotal = money(subtotal)
    if min_order_value is not None and subtotal < money(min_order_value):
        return ZERO

    if DiscountType(discount_type) == DiscountType.PERCENTAGE:
        discount = subtotal * Decimal(str(discount_value)) / Decimal("100")
    else:
        discount = Decimal(str(discount_value))

    if max_discount is not None and discount > Decimal(str(max_discount)):
        discount = Decimal(str(max_discount))
    if discount > subtotal:
        discount = subtotal
    return money(discount)


def coupon_discount(coupon: Optional[AppliedCoupon], subtotal: Decimal) -> Decimal:
    if coupon is None:
        return ZERO
    return compute_discount(
        subtotal,
        coupon.discount_type,
        coupon.discount_value,
        max_discount=coupon.max_discount,
        min_order_value=coupon.min_order_value,
    )


def compute_totals(
    lines: Iterable[CartLine],
    shipping: Optional[ShippingSelection] = None,
    coupon: Optional[AppliedCoupon] = None,
) -> OrderTotals:
    """应付总额 = 小计 - 折扣 + 运费"""
    subtotal = cart_subtotal(lines)
    discount = coupon_discount(coupon, subtotal)
    shipping_cost = money(shipping.price) if shipping else ZERO
    return OrderTotals(
        subtotal=subtotal,
        discount_amount=discount,
        shipping_cost=shipping_cost,
        total_amount=money(subtotal - discount + shipping_cost),
    )
