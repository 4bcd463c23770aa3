"""结算相关的请求/领域模型"""

from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_serializer


class PaymentMethod(str, Enum):
    """支付通道"""
    DIRECT_TRANSFER = "direct_transfer"
    GATEWAY = "gateway"


class BillingType(str, Enum):
    """网关子类型"""
    TRANSFER = "transfer"
    VOUCHER = "voucher"
    CARD = "card"

    @property
    def wire_value(self) -> str:
        """网关接口使用的计费类型"""
        return {
            BillingType.TRANSFER: "PIX",
            BillingType.VOUCHER: "BOLETO",
            BillingType.CARD: "CREDIT_CARD",
        }[self]


class CartProduct(BaseModel):
    id: str = Field(..., min_length=1, description="商品ID")
    name: str = ""
    price: Decimal = Field(..., ge=0, description="单价")


class CartLine(BaseModel):
    product: CartProduct
    quantity: int = Field(..., ge=1, description="数量")


class ShippingSelection(BaseModel):
    """已选运费方案（本次结算内不可变）"""
    carrier: str
    service: str
    price: Decimal = Field(..., ge=0)
    delivery_time_days: int = Field(0, ge=0)

    class Config:
        frozen = True


def mask_card_number(number: str) -> str:
    digits = "".join(ch for ch in number or "" if ch.isdigit())
    return f"**** {digits[-4:]}" if len(digits) >= 4 else "****"


class CardData(BaseModel):
    # 输出时只保留后 4 位，完整卡号只留在内存里供修改后重新提交
    number: str = ""
    holder_name: str = ""
    expiry_month: str = ""
    expiry_year: str = ""
    # 不回显给前端
    cvv: str = Field("", exclude=True)
    installments: int = 1

    @field_serializer("number")
    def _mask_number(self, number: str) -> str:
        return mask_card_number(number) if number else number


class CheckoutForm(BaseModel):
    """收货表单 + 支付方式"""
    name: str = ""
    phone: str = ""
    email: str = ""
    zip: str = ""
    address: str = ""
    number: str = ""
    complement: str = ""
    neighborhood: str = ""
    city: str = ""
    state: str = ""
    shipping_option: Optional[ShippingSelection] = None
    payment_method: PaymentMethod = PaymentMethod.DIRECT_TRANSFER
    billing_type: BillingType = BillingType.TRANSFER
    tax_id: str = Field("", description="CPF/CNPJ，网关支付必填")
    card: Optional[CardData] = None

    @property
    def is_card_payment(self) -> bool:
        return (
            self.payment_method == PaymentMethod.GATEWAY
            and self.billing_type == BillingType.CARD
        )


class AppliedCoupon(BaseModel):
    """优惠券缓存副本，仅用于金额预览"""
    id: str
    code: str
    discount_type: str
    discount_value: Decimal
    min_order_value: Optional[Decimal] = None
    max_discount: Optional[Decimal] = None
    discount_amount: Decimal = Decimal("0")


class OrderTotals(BaseModel):
    subtotal: Decimal
    discount_amount: Decimal
    shipping_cost: Decimal
    total_amount: Decimal


# ==================== 请求模型 ====================

class CreateSessionRequest(BaseModel):
    cart: List[CartLine] = Field(..., min_length=1, description="购物车明细")
    user_id: Optional[str] = None


class ApplyCouponRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
