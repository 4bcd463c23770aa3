"""优惠券API模型"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from app.schemas.checkout import AppliedCoupon


class CouponPreviewRequest(BaseModel):
    """优惠券校验请求"""
    code: str = Field(
        ...,
        min_length=1,
        max_length=64,
        description="券码",
    )
    order_total: Decimal = Field(
        ...,
        gt=0,
        description="订单小计",
    )


class CouponPreviewResponse(BaseModel):
    success: bool = True
    coupon: AppliedCoupon


class ReservationResult(BaseModel):
    """预占结果（服务端裁决）"""
    success: bool
    message: str
