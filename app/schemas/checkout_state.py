"""结算状态机（按 step 区分的联合类型）"""

from decimal import Decimal
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from app.schemas.checkout import AppliedCoupon, CartLine, CheckoutForm, OrderTotals
from app.schemas.payment import DirectTransferPayment, GatewayPayment


class ShippingState(BaseModel):
    step: Literal["shipping"] = "shipping"
    form: CheckoutForm = Field(default_factory=CheckoutForm)
    errors: Dict[str, str] = Field(default_factory=dict)
    message: Optional[str] = None


class ProcessingState(BaseModel):
    """卡支付处理中（含确认轮询）"""
    step: Literal["processing"] = "processing"


class AwaitingDirectTransferState(BaseModel):
    step: Literal["awaiting_direct_transfer"] = "awaiting_direct_transfer"
    order_id: str
    payment: DirectTransferPayment


class AwaitingGatewayState(BaseModel):
    step: Literal["awaiting_gateway"] = "awaiting_gateway"
    order_id: str
    payment: GatewayPayment


class ConfirmationState(BaseModel):
    step: Literal["confirmation"] = "confirmation"
    order_id: str
    total_amount: Decimal
    payment_method: str
    payment_link: Optional[str] = None
    payment_confirmed: bool = False


class CompletedState(BaseModel):
    """支付成功，前端跳转感谢页"""
    step: Literal["completed"] = "completed"
    order_id: str


CheckoutState = Annotated[
    Union[
        ShippingState,
        ProcessingState,
        AwaitingDirectTransferState,
        AwaitingGatewayState,
        ConfirmationState,
        CompletedState,
    ],
    Field(discriminator="step"),
]


class CheckoutSessionResponse(BaseModel):
    """结算会话响应"""
    session_id: str
    state: CheckoutState
    cart: List[CartLine] = []
    coupon: Optional[AppliedCoupon] = None
    totals: OrderTotals
